"""Tests for console output and the structured operation log."""
from __future__ import annotations

import json
import re
from pathlib import Path

import pytest
from fakes import RecordingLog

from hostboot.logging import StructuredLogger

TIMESTAMP = r"\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\]"


def test_console_log_routes_progress_and_problems() -> None:
    """Progress goes to stdout; warnings and errors go to stderr."""
    log = RecordingLog()

    log.info("Starting hostboot...")
    log.warning("vault file missing")
    log.error("rsync failed")

    assert re.fullmatch(f"{TIMESTAMP} Starting hostboot...\n", log.stdout)
    assert re.search(f"{TIMESTAMP} Warning: vault file missing", log.stderr)
    assert re.search(f"{TIMESTAMP} Error: rsync failed", log.stderr)
    assert "rsync" not in log.stdout


def test_console_log_verbose_lines_need_flag() -> None:
    """Verbose lines are suppressed unless verbose output was requested."""
    quiet = RecordingLog()
    loud = RecordingLog(verbose=True)

    quiet.verbose("Running: git --version")
    loud.verbose("Running: git --version")

    assert quiet.stdout == ""
    assert "Running: git --version" in loud.stdout


def test_console_log_prints_brackets_literally() -> None:
    """Messages are not interpreted as rich markup."""
    log = RecordingLog()

    log.info("deb [arch=amd64] stable main")

    assert "[arch=amd64]" in log.stdout


def test_structured_logger_disables_when_directory_unavailable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Logger gracefully disables itself when log directory cannot be created."""
    log_dir = tmp_path / "logs"

    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == log_dir:
            raise PermissionError("no access")
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir)
    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("run", args={"role": "base"}) as op:
        op.success("done", changed=0)


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs")
    operations_path = logger._operations_log_path  # type: ignore[attr-defined]

    original_open = Path.open

    def fail_once(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_once)

    with logger.operation("run") as op:
        op.success("done", changed=0)

    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("run") as op:
        op.success("done", changed=0)


def test_operation_records_steps_and_lock_wait(tmp_path: Path) -> None:
    """A successful operation writes one JSON line with its steps."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("run", args={"role": "base"}, target={"kind": "host"}) as op:
        op.set_lock_wait_ms(3)
        op.add_step("prerequisite.present", status="noop", detail="git")
        op.success("Host provisioned.", changed=0, context={"installed": []})

    lines = logger.path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    record = json.loads(lines[0])
    assert record["command"] == "run"
    assert record["args"] == {"role": "base"}
    assert record["target"] == {"kind": "host"}
    assert record["lock_wait_ms"] == 3
    assert record["steps"] == [
        {"name": "prerequisite.present", "status": "noop", "detail": "git"}
    ]
    assert record["result"]["status"] == "success"
    assert record["result"]["changed"] == 0


def test_operation_scope_warning_sanitises_context(tmp_path: Path) -> None:
    """Warnings should be recorded with JSON-safe context values."""
    logger = StructuredLogger(tmp_path / "logs")

    class Custom:
        def __str__(self) -> str:
            return "<custom>"

    with logger.operation("run", args={"path": Path("foo")}) as op:
        op.warning(
            "warned",
            warnings=("note",),
            errors=("err",),
            changed=1,
            context={"path": Path("/var/lib"), "obj": Custom()},
        )

    record = json.loads(logger.path.read_text(encoding="utf-8"))
    result = record["result"]
    assert record["args"] == {"path": "foo"}
    assert result["status"] == "warning"
    assert result["warnings"] == ["note"]
    assert result["errors"] == ["err"]
    assert result["context"] == {"path": "/var/lib", "obj": "<custom>"}


def test_operation_scope_error_defaults_error_list(tmp_path: Path) -> None:
    """Errors should default to the message when not provided."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("run") as op:
        op.error("boom", errors=None, context={"value": {1, 2}})

    record = json.loads(logger.path.read_text(encoding="utf-8"))
    result = record["result"]
    assert result["status"] == "error"
    assert result["errors"] == ["boom"]
    assert result["context"] == {"value": "{1, 2}"}


def test_operation_records_exception_and_reraises(tmp_path: Path) -> None:
    """An exception escaping the block is logged as an error and propagated."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(RuntimeError, match="rsync gave up"):
        with logger.operation("run"):
            raise RuntimeError("rsync gave up")

    record = json.loads(logger.path.read_text(encoding="utf-8"))
    assert record["result"]["status"] == "error"
    assert record["result"]["message"] == "rsync gave up"
