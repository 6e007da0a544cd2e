"""Execution of external commands on the host.

Every external command hostboot runs goes through :class:`CommandRunner` so
that privilege escalation, verbose echo and failure classification live in one
place. Each call site states the :class:`~hostboot.errors.Severity` of a
failure explicitly:

* ``FATAL`` and ``RETRYABLE`` failures raise :class:`CommandError` carrying
  that severity; callers translate it into their own error type.
* ``BEST_EFFORT`` failures are reported as warnings and the completed process
  is returned to the caller.
"""
from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from collections.abc import Callable, Mapping, Sequence

from .errors import CommandError, Severity
from .logging import ConsoleLog

SUDO = "sudo"


class CommandRunner:
    """Run commands, streaming output unless the caller needs to parse it."""

    def __init__(
        self,
        log: ConsoleLog,
        *,
        env: Mapping[str, str] | None = None,
        geteuid: Callable[[], int] = os.geteuid,
    ) -> None:
        """Create a runner writing diagnostics to *log*."""
        self.log = log
        self._env = dict(os.environ if env is None else env)
        self._geteuid = geteuid

    @property
    def is_root(self) -> bool:
        """Return ``True`` when the current process is already privileged."""
        return self._geteuid() == 0

    def set_env(self, key: str, value: str) -> None:
        """Export *key* to every command started afterwards."""
        self._env[key] = value

    def getenv(self, key: str) -> str | None:
        """Return a variable from the environment handed to commands."""
        return self._env.get(key)

    def which(self, name: str) -> str | None:
        """Resolve *name* on the command search path without side effects."""
        return shutil.which(name, path=self._env.get("PATH"))

    def privileged(self, argv: Sequence[str]) -> list[str]:
        """Prefix *argv* with sudo unless the process already runs as root."""
        if self.is_root:
            return list(argv)
        return [SUDO, *argv]

    def run(
        self,
        argv: Sequence[str],
        *,
        severity: Severity = Severity.FATAL,
        privileged: bool = False,
        capture: bool = False,
        check: bool = True,
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run *argv* and classify a failure according to *severity*.

        With ``check=False`` a non-zero exit status is returned as-is; only a
        missing binary or a timeout is classified.
        """
        command = self.privileged(argv) if privileged else list(argv)
        self.log.verbose(f"Running: {shlex.join(command)}")
        try:
            result = subprocess.run(  # noqa: S603
                command,
                capture_output=capture,
                text=True,
                check=False,
                timeout=timeout,
                env=self._env,
            )
        except FileNotFoundError as exc:
            return self._failed(command, f"{command[0]} not found: {exc}", None, severity)
        except subprocess.TimeoutExpired:
            return self._failed(
                command,
                f"{shlex.join(command)} timed out after {timeout:g}s",
                None,
                severity,
            )
        if check and result.returncode != 0:
            stderr = (result.stderr or "").strip() if capture else ""
            detail = f": {stderr}" if stderr else ""
            message = f"{shlex.join(command)} failed (exit {result.returncode}){detail}"
            return self._failed(command, message, result, severity)
        return result

    def _failed(
        self,
        command: list[str],
        message: str,
        result: subprocess.CompletedProcess[str] | None,
        severity: Severity,
    ) -> subprocess.CompletedProcess[str]:
        returncode = result.returncode if result is not None else None
        if severity is Severity.BEST_EFFORT:
            self.log.warning(message)
            if result is not None:
                return result
            return subprocess.CompletedProcess(command, returncode=127, stdout="", stderr="")
        raise CommandError(message, argv=command, returncode=returncode, severity=severity)


__all__ = ["CommandRunner", "SUDO"]
