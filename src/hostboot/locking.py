"""File locks guarding against concurrent provisioning runs on one host."""
from __future__ import annotations

import fcntl
import json
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from .errors import HostbootError

RUN_LOCK_NAME = "hostboot.lock"
_POLL_INTERVAL = 0.05


class LockError(HostbootError):
    """Raised when the lock file cannot be created or opened."""


class LockTimeoutError(LockError):
    """Raised when a lock cannot be acquired before the timeout expires."""


@dataclass(slots=True, frozen=True)
class LockHandle:
    """Details about an acquired lock."""

    path: Path
    wait_ms: int


class LockManager:
    """Acquire advisory ``flock`` locks under *runtime_dir*."""

    def __init__(self, runtime_dir: Path, default_timeout: float) -> None:
        """Remember where lock files live and how long to wait for them."""
        self.runtime_dir = runtime_dir
        self.default_timeout = default_timeout

    def lock_path(self, name: str = RUN_LOCK_NAME) -> Path:
        """Return the lock file path for *name*."""
        return self.runtime_dir / name

    @contextmanager
    def run_lock(self, *, timeout: float | None = None) -> Iterator[LockHandle]:
        """Hold the host-wide run lock for the duration of the block."""
        with self._acquire(self.lock_path(), timeout=timeout) as handle:
            yield handle

    @contextmanager
    def _acquire(self, path: Path, *, timeout: float | None) -> Iterator[LockHandle]:
        limit = self.default_timeout if timeout is None else timeout
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as exc:
            raise LockError(f"Cannot open run lock {path}: {exc.strerror or exc}") from exc
        started = time.monotonic()
        try:
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError as exc:
                    if time.monotonic() - started >= limit:
                        raise LockTimeoutError(
                            f"Another hostboot run holds {path}; gave up after {limit:g}s."
                        ) from exc
                    time.sleep(_POLL_INTERVAL)
            wait_ms = int((time.monotonic() - started) * 1000)
            self._write_metadata(fd, path)
            try:
                yield LockHandle(path=path, wait_ms=wait_ms)
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    @staticmethod
    def _write_metadata(fd: int, path: Path) -> None:
        payload = {
            "pid": os.getpid(),
            "path": str(path),
            "acquired_at": datetime.now(tz=UTC).isoformat(timespec="seconds"),
        }
        data = json.dumps(payload).encode("utf-8")
        os.ftruncate(fd, 0)
        os.pwrite(fd, data, 0)


__all__ = ["LockError", "LockHandle", "LockManager", "LockTimeoutError", "RUN_LOCK_NAME"]
