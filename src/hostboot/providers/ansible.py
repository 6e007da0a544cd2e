"""ansible-pull invocation."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..config import AppConfig
from ..errors import CommandError, PullError
from ..logging import ConsoleLog
from ..runner import CommandRunner


@dataclass(slots=True, frozen=True)
class PullParameters:
    """Everything ansible-pull needs for one run."""

    repo_url: str
    inventory: str
    role: str
    private_key: Path
    vault_password_file: Path
    playbook: str

    def argv(self, binary: str = "ansible-pull") -> list[str]:
        """Return the full command line."""
        return [
            binary,
            "-U",
            self.repo_url,
            "-i",
            self.inventory,
            "--extra-vars",
            f"host_role={self.role}",
            "--private-key",
            str(self.private_key),
            "--accept-host-key",
            "--vault-password-file",
            str(self.vault_password_file),
            self.playbook,
        ]


@dataclass(slots=True)
class PullOrchestrator:
    """Run the configuration pull and fail loudly when it does."""

    config: AppConfig
    runner: CommandRunner
    log: ConsoleLog

    def parameters(self, role: str, private_key: Path, home: Path) -> PullParameters:
        """Assemble the pull parameters for *role*."""
        return PullParameters(
            repo_url=self.config.repo_url,
            inventory=self.config.pull.inventory,
            role=role,
            private_key=private_key,
            vault_password_file=home / self.config.vault_password_file,
            playbook=self.config.playbook,
        )

    def run(self, params: PullParameters) -> None:
        """Invoke ansible-pull synchronously, streaming its output."""
        if not params.vault_password_file.exists():
            self.log.warning(f"Vault password file {params.vault_password_file} is missing.")
        self.log.info("Running ansible-pull...")
        try:
            self.runner.run(params.argv(self.config.pull.binary))
        except CommandError as exc:
            raise PullError(f"ansible-pull failed: {exc}") from exc


__all__ = ["PullOrchestrator", "PullParameters"]
