"""Prerequisite installation through the host's package manager.

Everything OS-specific lives in data: :data:`RECIPES` holds one row per OS
family and :data:`REPOSITORY_STEPS` lists the extra repository setup some
tools need on some families. :func:`package_directive` turns that data into
the ordered commands for one tool, so supporting another platform means adding
rows rather than branches.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from ..environment import HostProfile, OSFamily
from ..errors import CommandError, InstallError, Severity, UnsupportedPlatformError
from ..logging import ConsoleLog
from ..runner import SUDO, CommandRunner

GH_KEYRING = "/usr/share/keyrings/githubcli-archive-keyring.gpg"
GH_KEYRING_URL = "https://cli.github.com/packages/githubcli-archive-keyring.gpg"
GH_APT_LIST = "/etc/apt/sources.list.d/github-cli.list"
GH_RPM_REPO = "https://cli.github.com/packages/rpm/gh-cli.repo"
HOMEBREW_INSTALLER = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"
HOMEBREW_BIN_DIRS = ("/opt/homebrew/bin", "/usr/local/bin")
ARCH_PLACEHOLDER = "{arch}"


@dataclass(slots=True, frozen=True)
class Command:
    """One command of an install directive."""

    argv: tuple[str, ...]
    privileged: bool = True


@dataclass(slots=True, frozen=True)
class PackageRecipe:
    """How a family's package manager refreshes its index and installs."""

    manager: str
    install: tuple[str, ...]
    refresh: tuple[tuple[str, ...], ...] = ()
    privileged: bool = True


RECIPES: dict[OSFamily, PackageRecipe] = {
    OSFamily.DEBIAN: PackageRecipe(
        manager="apt-get",
        install=("apt-get", "install", "-y"),
        refresh=(("apt-get", "update"),),
    ),
    OSFamily.FEDORA: PackageRecipe(manager="dnf", install=("dnf", "install", "-y")),
    OSFamily.RHEL: PackageRecipe(manager="yum", install=("yum", "install", "-y")),
    OSFamily.DARWIN: PackageRecipe(manager="brew", install=("brew", "install"), privileged=False),
}

# Command names whose package is called something else.
PACKAGE_NAMES: dict[str, str] = {
    "ansible-playbook": "ansible",
    "ansible-pull": "ansible",
}

_EPEL = (Command(("yum", "install", "-y", "epel-release")),)

REPOSITORY_STEPS: dict[tuple[OSFamily, str], tuple[Command, ...]] = {
    (OSFamily.DEBIAN, "gh"): (
        Command(("bash", "-c", f"curl -fsSL {GH_KEYRING_URL} | dd of={GH_KEYRING}")),
        Command(("chmod", "go+r", GH_KEYRING)),
        Command(
            (
                "bash",
                "-c",
                f"echo 'deb [arch={ARCH_PLACEHOLDER} signed-by={GH_KEYRING}] "
                f"https://cli.github.com/packages stable main' > {GH_APT_LIST}",
            )
        ),
    ),
    (OSFamily.FEDORA, "gh"): (Command(("dnf", "config-manager", "--add-repo", GH_RPM_REPO)),),
    (OSFamily.RHEL, "gh"): (Command(("yum-config-manager", "--add-repo", GH_RPM_REPO)),),
    (OSFamily.RHEL, "jq"): _EPEL,
    (OSFamily.RHEL, "rsync"): _EPEL,
    (OSFamily.RHEL, "ansible-playbook"): _EPEL,
}


def recipe_for(os_family: OSFamily) -> PackageRecipe:
    """Return the recipe for *os_family* or fail with UnsupportedPlatformError."""
    recipe = RECIPES.get(os_family)
    if recipe is None:
        raise UnsupportedPlatformError(
            f"Unsupported platform '{os_family.value}': no package manager recipe is defined."
        )
    return recipe


def package_name(tool: str) -> str:
    """Return the package providing command *tool*."""
    return PACKAGE_NAMES.get(tool, tool)


def needs_architecture(os_family: OSFamily, tool: str) -> bool:
    """Return ``True`` when the directive for *tool* embeds the CPU architecture."""
    return any(
        ARCH_PLACEHOLDER in arg
        for command in REPOSITORY_STEPS.get((os_family, tool), ())
        for arg in command.argv
    )


def package_directive(
    os_family: OSFamily,
    tool: str,
    *,
    arch: str | None = None,
) -> list[Command]:
    """Return the ordered commands that install *tool* on *os_family*."""
    recipe = recipe_for(os_family)
    commands: list[Command] = []
    for step in REPOSITORY_STEPS.get((os_family, tool), ()):
        argv = step.argv
        if arch is not None:
            argv = tuple(arg.replace(ARCH_PLACEHOLDER, arch) for arg in argv)
        commands.append(Command(argv, privileged=step.privileged and recipe.privileged))
    commands.extend(Command(argv, privileged=recipe.privileged) for argv in recipe.refresh)
    commands.append(Command((*recipe.install, package_name(tool)), privileged=recipe.privileged))
    return commands


@dataclass(slots=True)
class PrerequisiteEnsurer:
    """Make sure named tools are available, installing them when absent."""

    runner: CommandRunner
    log: ConsoleLog
    installed: list[str] = field(default_factory=list)

    def ensure(self, tool: str, profile: HostProfile) -> bool:
        """Ensure *tool* resolves on the search path; return ``True`` if installed."""
        recipe = recipe_for(profile.os_family)
        if self.runner.which(tool):
            self.log.verbose(f"{tool} is already installed.")
            return False

        if tool == SUDO and recipe.privileged and not self.runner.is_root:
            raise InstallError(
                "sudo is not installed and hostboot is not running as root; "
                "install sudo manually or re-run as root."
            )

        self.log.info(f"{tool} is not installed. Installing...")
        arch = None
        if needs_architecture(profile.os_family, tool):
            arch = self._package_architecture(tool)
        for command in package_directive(profile.os_family, tool, arch=arch):
            try:
                self.runner.run(command.argv, privileged=command.privileged)
            except CommandError as exc:
                raise InstallError(f"Failed to install {tool}: {exc}") from exc
        self.installed.append(tool)
        return True

    def ensure_all(self, tools: Iterable[str], profile: HostProfile) -> list[str]:
        """Ensure every tool in order; return those that had to be installed."""
        return [tool for tool in tools if self.ensure(tool, profile)]

    def ensure_homebrew(self, profile: HostProfile) -> bool:
        """Install Homebrew on darwin hosts that lack it."""
        recipe_for(profile.os_family)
        if profile.os_family is not OSFamily.DARWIN:
            return False
        if self.runner.which("brew"):
            self.log.verbose("Homebrew is already installed.")
            return False

        self.log.info("Homebrew is not installed. Attempting to install Homebrew...")
        try:
            self.runner.run([SUDO, "-v"])
        except CommandError as exc:
            raise InstallError(f"Failed to get sudo credentials: {exc}") from exc
        try:
            self.runner.run(
                [
                    "/bin/bash",
                    "-c",
                    f"curl -fsSL {HOMEBREW_INSTALLER} | NONINTERACTIVE=1 CI=1 /bin/bash",
                ]
            )
        except CommandError as exc:
            raise InstallError(
                f"Failed to install Homebrew: {exc}. Ensure the user has sudo "
                "privileges, or install Homebrew manually."
            ) from exc
        self._expose_homebrew()
        return True

    def _expose_homebrew(self) -> None:
        if self.runner.which("brew"):
            return
        current = self.runner.getenv("PATH") or ""
        extra = [path for path in HOMEBREW_BIN_DIRS if path not in current.split(":")]
        self.runner.set_env("PATH", ":".join([*extra, current]) if current else ":".join(extra))

    def _package_architecture(self, tool: str) -> str:
        try:
            result = self.runner.run(
                ["dpkg", "--print-architecture"],
                capture=True,
                severity=Severity.FATAL,
            )
        except CommandError as exc:
            raise InstallError(f"Failed to detect architecture for {tool}: {exc}") from exc
        return result.stdout.strip()


def describe(commands: Sequence[Command]) -> list[str]:
    """Render *commands* for display."""
    return [" ".join(command.argv) for command in commands]


__all__ = [
    "Command",
    "PackageRecipe",
    "PrerequisiteEnsurer",
    "RECIPES",
    "REPOSITORY_STEPS",
    "describe",
    "needs_architecture",
    "package_directive",
    "package_name",
    "recipe_for",
]
