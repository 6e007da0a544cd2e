"""Typer-powered command line for ``hostboot``."""
from __future__ import annotations

import textwrap
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .bootstrap import DEFAULT_ROLE, ProvisioningRequest, build_sequence
from .config import AppConfig, ConfigError, load_config
from .environment import OSFamily, detect_host
from .errors import HostbootError
from .exit_codes import ExitCode
from .logging import ConsoleLog
from .providers.packages import describe, package_directive

console = Console()
err_console = Console(stderr=True)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to hostboot's YAML config file.",
)
ROLE_OPTION = typer.Option(
    DEFAULT_ROLE,
    "--role",
    "-r",
    help="Role to use for provisioning (e.g., base, keyserver, webserver).",
)
VERBOSE_OPTION = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Echo every command before running it.",
)
HOOK_OPTION = typer.Option(
    False,
    "--schedule-post-reboot-hook",
    "--mise-install",
    help="Install a one-shot systemd service that runs after reboot, then reboot.",
)
JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit JSON instead of a table.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Bootstrap a fresh host for ansible-pull.

        Installs prerequisites, provisions the SSH identity used to reach the
        configuration repository, and runs ansible-pull for the given role.
        """
    ).strip(),
)
config_app = typer.Typer(help="Inspect resolved configuration.")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Objects shared by commands."""

    config: AppConfig


def _fatal(message: str) -> typer.Exit:
    err_console.print(f"[red]{message}[/red]", markup=True, highlight=False)
    return typer.Exit(code=ExitCode.FATAL)


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    try:
        runtime = RuntimeContext(config=load_config())
    except ConfigError as exc:
        raise _fatal(str(exc)) from exc
    ctx.obj = runtime
    return runtime


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the hostboot version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"hostboot {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    try:
        ctx.obj = RuntimeContext(config=load_config(config_file=config_file))
    except ConfigError as exc:
        raise _fatal(str(exc)) from exc

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


@app.command()
def run(
    ctx: typer.Context,
    role: str = ROLE_OPTION,
    verbose: bool = VERBOSE_OPTION,
    schedule_post_reboot_hook: bool = HOOK_OPTION,
) -> None:
    """Provision this host and run ansible-pull for ROLE."""
    runtime = _get_runtime(ctx)
    try:
        request = ProvisioningRequest(
            role=role,
            verbose=verbose,
            schedule_post_reboot_hook=schedule_post_reboot_hook,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--role") from exc

    log = ConsoleLog(verbose=verbose)
    sequence = build_sequence(runtime.config, request, log=log)
    try:
        sequence.run(request)
    except HostbootError as exc:
        log.error(str(exc))
        raise typer.Exit(code=ExitCode.FATAL) from exc


@app.command()
def detect(json_output: bool = JSON_OPTION) -> None:
    """Show what hostboot detects about this host."""
    profile = detect_host()
    if json_output:
        console.print_json(data=profile.to_dict())
        return
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for key, value in profile.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)
    if not profile.supported:
        err_console.print("[yellow]No package manager recipe for this host.[/yellow]")


@app.command()
def directive(
    tool: str = typer.Argument(..., help="Command that should be installed."),
    os_family: OSFamily | None = typer.Option(
        None,
        "--os-family",
        case_sensitive=False,
        help="Show the commands for this OS family instead of the detected one.",
    ),
    arch: str = typer.Option(
        "amd64",
        "--arch",
        help="Architecture substituted into repository entries.",
    ),
) -> None:
    """Print the commands that would install TOOL."""
    family = os_family or detect_host().os_family
    try:
        commands = package_directive(family, tool, arch=arch)
    except HostbootError as exc:
        raise _fatal(str(exc)) from exc
    for index, line in enumerate(describe(commands), start=1):
        prefix = "sudo " if commands[index - 1].privileged else ""
        console.print(f"{index}. {prefix}{line}", markup=False, highlight=False)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Print the resolved configuration as JSON."""
    runtime = _get_runtime(ctx)
    console.print_json(data=runtime.config.to_dict())


def main() -> None:
    """Console-script entry point."""
    app()


__all__ = ["app", "main"]
