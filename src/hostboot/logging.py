"""Console and structured operation logging for hostboot.

Two channels are kept apart:

* :class:`ConsoleLog` prints timestamped, human-readable lines. Progress goes
  to stdout, warnings and errors go to stderr so scripts can tell them apart.
* :class:`StructuredLogger` appends one JSON record per operation to
  ``operations.jsonl`` under the configured log directory. It never breaks a
  run: when the directory cannot be created or a write fails it disables
  itself and carries on silently.
"""
from __future__ import annotations

import json
import os
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from rich.console import Console

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _timestamp() -> str:
    return datetime.now().strftime(TIMESTAMP_FORMAT)


def _iso_now() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _sanitize(value: object) -> object:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return str(value)


class ConsoleLog:
    """Timestamped console output shared by every provisioning step."""

    def __init__(
        self,
        *,
        verbose: bool = False,
        out: Console | None = None,
        err: Console | None = None,
    ) -> None:
        """Create a console log; *verbose* enables command echo and debug lines."""
        self.verbose_enabled = verbose
        self._out = out or Console(highlight=False, soft_wrap=True)
        self._err = err or Console(stderr=True, highlight=False, soft_wrap=True)

    def info(self, message: str) -> None:
        """Print a progress line."""
        self._out.print(f"[{_timestamp()}] {message}", markup=False)

    def verbose(self, message: str) -> None:
        """Print a line only when verbose output was requested."""
        if self.verbose_enabled:
            self.info(message)

    def warning(self, message: str) -> None:
        """Print a warning line to stderr."""
        self._err.print(f"[{_timestamp()}] Warning: {message}", markup=False, style="yellow")

    def error(self, message: str) -> None:
        """Print an error line to stderr."""
        self._err.print(f"[{_timestamp()}] Error: {message}", markup=False, style="red")

    def prompt(self, message: str) -> str:
        """Ask the operator for a secret value without echoing it."""
        return self._out.input(message, password=True)


@dataclass(slots=True)
class _Step:
    name: str
    status: str
    detail: str | None = None


@dataclass
class OperationScope:
    """Collects steps and the final result of a logged operation."""

    command: str
    args: Mapping[str, object]
    target: Mapping[str, object]
    started: float = field(default_factory=time.monotonic)
    steps: list[_Step] = field(default_factory=list)
    result: dict[str, object] | None = None
    lock_wait_ms: int | None = None

    def add_step(self, name: str, *, status: str = "success", detail: str | None = None) -> None:
        """Record an intermediate step."""
        self.steps.append(_Step(name=name, status=status, detail=detail))

    def set_lock_wait_ms(self, value: int) -> None:
        """Record how long the operation waited on its lock."""
        self.lock_wait_ms = value

    def success(
        self,
        message: str,
        *,
        changed: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._set_result("success", message, changed=changed, context=context)

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._set_result(
            "warning",
            message,
            changed=changed,
            context=context,
            warnings=list(warnings or [message]),
            errors=list(errors or []),
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._set_result(
            "error",
            message,
            context=context,
            errors=list(errors or [message]),
            rc=rc,
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int | None = None,
        context: Mapping[str, object] | None = None,
        **extra: object,
    ) -> None:
        result: dict[str, object] = {"status": status, "message": message}
        if changed is not None:
            result["changed"] = changed
        for key, value in extra.items():
            if value is not None:
                result[key] = value
        if context:
            result["context"] = _sanitize(context)
        self.result = result

    def to_record(self) -> dict[str, object]:
        """Return the JSON payload written for this operation."""
        duration_ms = int((time.monotonic() - self.started) * 1000)
        record: dict[str, object] = {
            "ts": _iso_now(),
            "pid": os.getpid(),
            "command": self.command,
            "args": _sanitize(self.args),
            "target": _sanitize(self.target),
            "steps": [
                {"name": step.name, "status": step.status, "detail": step.detail}
                for step in self.steps
            ],
            "result": self.result or {"status": "unknown"},
            "duration_ms": duration_ms,
        }
        if self.lock_wait_ms is not None:
            record["lock_wait_ms"] = self.lock_wait_ms
        return record


class StructuredLogger:
    """Append-only JSONL operation log."""

    def __init__(self, log_dir: Path) -> None:
        """Prepare *log_dir*; disable logging when it cannot be created."""
        self._log_dir = log_dir
        self._operations_log_path = log_dir / "operations.jsonl"
        self._enabled = True
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._enabled = False

    @property
    def path(self) -> Path:
        """Return the operations log path."""
        return self._operations_log_path

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield a scope for *command* and write its record on exit."""
        scope = OperationScope(command=command, args=dict(args or {}), target=dict(target or {}))
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(str(exc) or type(exc).__name__)
            raise
        finally:
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError:
            self._enabled = False


__all__ = ["ConsoleLog", "OperationScope", "StructuredLogger"]
