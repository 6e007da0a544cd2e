"""The ordered provisioning sequence.

Steps run strictly in order and each may end the run by raising a
:class:`~hostboot.errors.HostbootError`:

1. ensure ``~/.ssh``
2. detect the host
3. bootstrap Homebrew on darwin
4. ensure every prerequisite
5. provision SSH credentials for the role
6. run ansible-pull
7. optionally schedule the post-reboot hook
"""
from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from ..config import AppConfig
from ..environment import HostProfile, detect_host
from ..locking import LockManager
from ..logging import ConsoleLog, StructuredLogger
from ..providers.ansible import PullOrchestrator, PullParameters
from ..providers.credentials import CredentialProvisioner, CredentialResult
from ..providers.keyregistry import KeyRegistry
from ..providers.packages import PrerequisiteEnsurer
from ..providers.ssh import SSHIdentity, SSHKeyManager, ensure_ssh_directory, resolve_home
from ..providers.systemd import SystemdProvider, TargetUser, resolve_target_user
from ..runner import CommandRunner
from ..templates import TemplateEngine
from .request import ProvisioningRequest


@dataclass(slots=True)
class SequenceReport:
    """Summary of a completed run."""

    profile: HostProfile | None = None
    installed: list[str] = field(default_factory=list)
    credentials: CredentialResult | None = None
    pull: PullParameters | None = None
    hook_unit: Path | None = None


@dataclass(slots=True)
class ProvisioningSequence:
    """Wire the providers together and run them in order."""

    config: AppConfig
    log: ConsoleLog
    logger: StructuredLogger
    locks: LockManager
    installer: PrerequisiteEnsurer
    credentials: CredentialProvisioner
    orchestrator: PullOrchestrator
    systemd: SystemdProvider
    detect: Callable[[], HostProfile] = detect_host
    home: Callable[[], Path] = resolve_home
    target_user: Callable[[], TargetUser] = resolve_target_user
    prompt: Callable[[str], str] = input

    def run(self, request: ProvisioningRequest) -> SequenceReport:
        """Provision the host for *request*."""
        report = SequenceReport()
        with self.logger.operation(
            "run",
            args=request.to_dict(),
            target={"kind": "host"},
        ) as op:
            with self.locks.run_lock() as handle:
                op.set_lock_wait_ms(handle.wait_ms)
                self.log.info("Starting hostboot...")

                home = self.home()
                ssh_dir = ensure_ssh_directory(home, self.log)
                op.add_step("ssh.directory", detail=str(ssh_dir))

                profile = self.detect()
                report.profile = profile
                self.log.info(f"Detected OS: {profile.os_id} ({profile.os_family.value})")
                op.add_step("environment.detect", detail=profile.os_family.value)

                if self.installer.ensure_homebrew(profile):
                    op.add_step("homebrew.install")

                for tool in self.config.prerequisites:
                    if self.installer.ensure(tool, profile):
                        report.installed.append(tool)
                        op.add_step("prerequisite.install", detail=tool)
                    else:
                        op.add_step("prerequisite.present", status="noop", detail=tool)

                identity = SSHIdentity.in_directory(ssh_dir, self.config.ssh_key_name)
                report.credentials = self.credentials.provision(
                    request.role,
                    identity,
                    prompt=self.prompt,
                )
                op.add_step(f"credentials.{report.credentials.mode}")

                params = self.orchestrator.parameters(request.role, identity.private_key, home)
                self.orchestrator.run(params)
                report.pull = params
                op.add_step("ansible.pull", detail=f"host_role={request.role}")

                if request.schedule_post_reboot_hook:
                    report.hook_unit = self.systemd.schedule(self.target_user())
                    op.add_step("hook.schedule", detail=str(report.hook_unit))
                else:
                    self.log.info("Skipping post-reboot hook setup.")

                self.log.info("Bootstrapping complete.")
                op.success(
                    "Host provisioned.",
                    changed=len(report.installed) + int(report.credentials.written),
                    context={"installed": report.installed, "role": request.role},
                )
        return report


def build_sequence(
    config: AppConfig,
    request: ProvisioningRequest,
    *,
    log: ConsoleLog | None = None,
    runner: CommandRunner | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProvisioningSequence:
    """Construct a :class:`ProvisioningSequence` from *config*."""
    log = log or ConsoleLog(verbose=request.verbose)
    runner = runner or CommandRunner(log)
    registry = KeyRegistry(runner=runner, log=log, config=config.github)
    keys = SSHKeyManager(
        runner=runner,
        log=log,
        ssh_host=config.github.ssh_host,
        timeout=config.github.ssh_timeout,
    )
    return ProvisioningSequence(
        config=config,
        log=log,
        logger=StructuredLogger(config.logs_dir),
        locks=LockManager(config.runtime_dir, config.lock_timeout),
        installer=PrerequisiteEnsurer(runner=runner, log=log),
        credentials=CredentialProvisioner(
            config=config,
            runner=runner,
            log=log,
            keys=keys,
            registry=registry,
            sleep=sleep,
        ),
        orchestrator=PullOrchestrator(config=config, runner=runner, log=log),
        systemd=SystemdProvider(
            templates=TemplateEngine.with_overrides(config.templates_dir),
            runner=runner,
            log=log,
            hook=config.hook,
            temp_dir=config.temp_dir,
        ),
        prompt=log.prompt,
    )


__all__ = ["ProvisioningSequence", "SequenceReport", "build_sequence"]
