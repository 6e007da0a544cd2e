"""End-to-end tests for the provisioning sequence with a fake host."""
from __future__ import annotations

import json
from pathlib import Path

import pytest
from fakes import FakeRunner, completed

from hostboot.bootstrap import ProvisioningRequest, ProvisioningSequence, build_sequence
from hostboot.config import AppConfig
from hostboot.environment import HostProfile, OSFamily
from hostboot.errors import PullError, UnsupportedPlatformError
from hostboot.providers.systemd import TargetUser

TOOLS = ("sudo", "curl", "git", "rsync", "jq", "ansible-playbook", "gh")
KEY_BYTES = b"shared private key\n"
GREETING = "Hi octocat! You've successfully authenticated, but GitHub does not provide shell access."


def _serve_key(runner: FakeRunner) -> None:
    def rsync(argv: list[str]) -> int:
        target = Path(argv[-1])
        target.write_bytes(KEY_BYTES)
        return 0

    runner.on(["rsync"], rsync)


def _sequence(
    config: AppConfig,
    runner: FakeRunner,
    home: Path,
    request: ProvisioningRequest,
    *,
    profile: HostProfile | None = None,
) -> ProvisioningSequence:
    home.mkdir(parents=True, exist_ok=True)
    sequence = build_sequence(config, request, log=runner.log, runner=runner, sleep=lambda _: None)
    sequence.detect = lambda: profile or HostProfile(OSFamily.DEBIAN, "ubuntu", "x86_64")
    sequence.home = lambda: home
    sequence.target_user = lambda: TargetUser(name="deploy", home=home)
    sequence.prompt = lambda message: ""
    return sequence


def test_prepared_host_only_pulls(app_config: AppConfig, tmp_path: Path) -> None:
    """With tools present and an identical key, only ansible-pull changes anything."""
    runner = FakeRunner(available=TOOLS, root=False)
    _serve_key(runner)
    home = tmp_path / "home"
    (home / ".ssh").mkdir(parents=True)
    (home / ".ssh" / "id_ecdsa_github").write_bytes(KEY_BYTES)
    request = ProvisioningRequest()
    sequence = _sequence(app_config, runner, home, request)

    report = sequence.run(request)

    assert report.installed == []
    assert sequence.installer.installed == []
    assert sequence.credentials.writes == []
    assert report.credentials is not None and report.credentials.written is False
    pulls = runner.commands("ansible-pull")
    assert len(pulls) == 1
    assert "host_role=base" in pulls[0]
    assert str(home / ".ssh" / "id_ecdsa_github") in pulls[0]
    assert [call[0] for call in runner.calls] == ["rsync", "ansible-pull"]
    assert "Skipping post-reboot hook setup." in runner.log.stdout  # type: ignore[attr-defined]
    assert "Bootstrapping complete." in runner.log.stdout  # type: ignore[attr-defined]

    record = json.loads(sequence.logger.path.read_text(encoding="utf-8"))
    assert record["command"] == "run"
    assert record["args"]["role"] == "base"
    assert record["result"]["status"] == "success"
    assert record["result"]["changed"] == 0


def test_fresh_host_installs_and_creates_ssh_dir(app_config: AppConfig, tmp_path: Path) -> None:
    """Missing tools are installed in order and ~/.ssh is created."""
    runner = FakeRunner(available=("sudo", "curl", "git", "rsync", "ansible-playbook", "gh"))
    _serve_key(runner)
    home = tmp_path / "home"
    request = ProvisioningRequest(role="webserver")
    sequence = _sequence(
        app_config,
        runner,
        home,
        request,
        profile=HostProfile(OSFamily.FEDORA, "fedora", "x86_64"),
    )

    report = sequence.run(request)

    assert report.installed == ["jq"]
    assert runner.calls[0] == ["dnf", "install", "-y", "jq"]
    assert (home / ".ssh").is_dir()
    assert (home / ".ssh" / "id_ecdsa_github").read_bytes() == KEY_BYTES
    assert "host_role=webserver" in runner.commands("ansible-pull")[0]


def test_unknown_os_stops_before_any_command(app_config: AppConfig, tmp_path: Path) -> None:
    """An unsupported host fails fast without touching anything."""
    runner = FakeRunner(available=TOOLS)
    request = ProvisioningRequest()
    sequence = _sequence(
        app_config,
        runner,
        tmp_path / "home",
        request,
        profile=HostProfile(OSFamily.UNKNOWN, "arch", "x86_64"),
    )

    with pytest.raises(UnsupportedPlatformError):
        sequence.run(request)

    assert runner.calls == []
    record = json.loads(sequence.logger.path.read_text(encoding="utf-8"))
    assert record["result"]["status"] == "error"


def test_keyserver_role_verifies_registration(app_config: AppConfig, tmp_path: Path) -> None:
    """The keyserver role authenticates and checks its own key instead of fetching."""
    runner = FakeRunner(available=TOOLS)
    runner.on(["ssh", "-T"], lambda argv: completed(argv, returncode=1, stdout=GREETING))
    home = tmp_path / "home"
    ssh_dir = home / ".ssh"
    ssh_dir.mkdir(parents=True)
    (ssh_dir / "id_ecdsa_github").write_text("private", encoding="utf-8")
    (ssh_dir / "id_ecdsa_github.pub").write_text("ecdsa-sha2-nistp521 AAAA\n", encoding="utf-8")
    request = ProvisioningRequest(role="keyserver")
    sequence = _sequence(app_config, runner, home, request)

    report = sequence.run(request)

    assert report.credentials is not None
    assert report.credentials.mode == "generate"
    assert report.credentials.authenticated is True
    assert runner.commands("rsync") == []
    assert [call[0] for call in runner.calls] == ["gh", "ssh", "ansible-pull"]


def test_hook_scheduled_after_pull(app_config: AppConfig, tmp_path: Path) -> None:
    """The post-reboot hook is installed only after a successful pull."""
    runner = FakeRunner(available=TOOLS)
    _serve_key(runner)
    request = ProvisioningRequest(schedule_post_reboot_hook=True)
    sequence = _sequence(app_config, runner, tmp_path / "home", request)

    report = sequence.run(request)

    names = [call[0] for call in runner.calls]
    assert names.index("ansible-pull") < names.index("mv")
    assert names[-1] == "reboot"
    assert report.hook_unit == Path("/etc/systemd/system/mise-install-once.service")


def test_pull_failure_skips_hook(app_config: AppConfig, tmp_path: Path) -> None:
    """A failed pull ends the run before the hook is scheduled."""
    runner = FakeRunner(available=TOOLS)
    _serve_key(runner)
    runner.on(["ansible-pull"], lambda argv: 2)
    request = ProvisioningRequest(schedule_post_reboot_hook=True)
    sequence = _sequence(app_config, runner, tmp_path / "home", request)

    with pytest.raises(PullError):
        sequence.run(request)

    assert runner.commands("systemctl") == []
    assert runner.commands("reboot") == []


def test_request_rejects_blank_role() -> None:
    """A role is always required."""
    with pytest.raises(ValueError):
        ProvisioningRequest(role="  ")
