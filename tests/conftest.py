"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from fakes import FakeRunner, RecordingLog

from hostboot.config import AppConfig, load_config
from hostboot.environment import HostProfile, OSFamily


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Return a configuration whose writable paths live under *tmp_path*."""
    return load_config(
        config_file=tmp_path / "missing.yml",
        env={},
        overrides={
            "logs_dir": str(tmp_path / "logs"),
            "runtime_dir": str(tmp_path / "run"),
            "temp_dir": str(tmp_path / "tmp"),
            "templates_dir": str(tmp_path / "templates"),
            "fetch": {"delay": 0.5},
        },
    )


@pytest.fixture
def log() -> RecordingLog:
    """Return a console log capturing its output."""
    return RecordingLog()


@pytest.fixture
def runner(log: RecordingLog) -> FakeRunner:
    """Return a root fake runner with nothing installed."""
    return FakeRunner(log=log)


@pytest.fixture
def debian() -> HostProfile:
    """Return a Debian host profile."""
    return HostProfile(OSFamily.DEBIAN, "ubuntu", "x86_64")
