"""Systemd provider for the one-shot post-reboot hook."""
from __future__ import annotations

import os
import pwd
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from ..config import HookConfig
from ..errors import CommandError, HookError, Severity
from ..logging import ConsoleLog
from ..runner import CommandRunner
from ..templates import TemplateEngine

UNIT_TEMPLATE = "systemd/oneshot.service.j2"


@dataclass(slots=True, frozen=True)
class TargetUser:
    """Unprivileged account the deferred command runs as."""

    name: str
    home: Path


def resolve_target_user(env: Mapping[str, str] | None = None) -> TargetUser:
    """Prefer the user who invoked sudo, falling back to the process owner."""
    environ = os.environ if env is None else env
    name = environ.get("SUDO_USER") or ""
    if not name:
        try:
            name = pwd.getpwuid(os.getuid()).pw_name
        except KeyError as exc:
            raise HookError("Cannot determine current user.") from exc
    try:
        entry = pwd.getpwnam(name)
    except KeyError as exc:
        raise HookError(f"Cannot look up user {name}.") from exc
    return TargetUser(name=name, home=Path(entry.pw_dir))


@dataclass(slots=True)
class SystemdProvider:
    """Render, install, and enable the self-removing one-shot unit."""

    templates: TemplateEngine
    runner: CommandRunner
    log: ConsoleLog
    hook: HookConfig
    temp_dir: Path = Path("/tmp")

    @property
    def unit_name(self) -> str:
        """Return the unit file name."""
        return self.hook.unit_name

    def unit_path(self) -> Path:
        """Return the installed unit path."""
        return self.hook.unit_dir / self.unit_name

    def render_unit(self, user: TargetUser) -> str:
        """Return the unit file content for *user*."""
        return self.templates.render_to_string(UNIT_TEMPLATE, self._context(user))

    def schedule(self, user: TargetUser, *, reboot: bool = True) -> Path:
        """Install and enable the unit, then reboot unless told otherwise."""
        self.log.info(
            f"Setting up one-shot systemd service for '{self.hook.command}' after reboot..."
        )
        staged = self.temp_dir / self.unit_name
        try:
            self.templates.render_to_path(UNIT_TEMPLATE, staged, self._context(user), mode=0o644)
        except OSError as exc:
            raise HookError(f"Failed to write temp systemd service file: {exc}") from exc

        destination = self.unit_path()
        self._privileged(["mv", str(staged), str(destination)], "move service file")
        self._systemctl("daemon-reload")
        self._systemctl("enable", self.unit_name)

        if reboot:
            self.log.info("One-shot service created and enabled. Rebooting now...")
            self.reboot()
        return destination

    def reboot(self) -> None:
        """Reboot the host; a failure is reported, not raised."""
        result = self.runner.run(["reboot"], privileged=True, severity=Severity.BEST_EFFORT)
        if result.returncode != 0:
            self.log.error("Failed to reboot; reboot manually to run the one-shot service.")

    # ------------------------------------------------------------------
    def _context(self, user: TargetUser) -> dict[str, object]:
        return {
            "description": self.hook.description,
            "user": user.name,
            "home": str(user.home),
            "shell": self.hook.shell,
            "command": self.hook.command,
            "systemctl": self.hook.systemctl_bin,
            "unit_name": self.unit_name,
            "unit_path": str(self.unit_path()),
        }

    def _systemctl(self, command: str, unit: str | None = None) -> None:
        args = [self.hook.systemctl_bin, command]
        if unit is not None:
            args.append(unit)
        self._privileged(args, f"{self.hook.systemctl_bin} {command}")

    def _privileged(self, argv: list[str], action: str) -> None:
        try:
            self.runner.run(argv, privileged=True)
        except CommandError as exc:
            raise HookError(f"Failed to {action}: {exc}") from exc


__all__ = ["SystemdProvider", "TargetUser", "UNIT_TEMPLATE", "resolve_target_user"]
