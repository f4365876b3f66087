"""CLI entry points for cmdgate.

Implements click-based CLI
"""

import asyncio
import json
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cmdgate import __version__
from cmdgate.core.config import GatewayConfig, load_config
from cmdgate.core.exceptions import CmdGateException, ConfigurationError, format_error_for_user
from cmdgate.core.gateway import CommandGateway, ExecutionResult
from cmdgate.core.logger import CmdGateLogger

# Load .env file from current directory or parent directories
load_dotenv()

console = Console()


def _build_gateway(ctx: click.Context) -> CommandGateway:
    """Create a gateway from the group options, exiting on config errors."""
    config_path = ctx.obj.get("config_path")
    try:
        config = load_config(Path(config_path) if config_path else None)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {format_error_for_user(e)}")
        sys.exit(1)
    return CommandGateway(config, logger=CmdGateLogger(level=ctx.obj.get("log_level")))


@click.group()
@click.version_option(version=__version__, prog_name="cmdgate")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Config file (default: ./cmdgate.json or ~/.cmdgate/config.json)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARN", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level (default: from CMDGATE_LOG_LEVEL or WARNING)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str | None) -> None:
    """cmdgate: policy-guarded command execution.

    Runs commands in configured shells after checking them against blocked
    commands, arguments, operators and allowed working directories.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["log_level"] = log_level


@cli.command()
@click.argument("shell")
@click.argument("command")
@click.option("--cwd", default=None, help="Working directory (default: current directory)")
@click.option("--max-lines", type=int, default=None, help="Lines of output to show")
@click.option("--timeout", "-t", type=int, default=None, help="Timeout in seconds")
@click.pass_context
def run(
    ctx: click.Context,
    shell: str,
    command: str,
    cwd: str | None,
    max_lines: int | None,
    timeout: int | None,
) -> None:
    """Run COMMAND in SHELL.

    Examples:
        cmdgate run bash "ls -la"
        cmdgate run bash "cd src && git status" --cwd ~/project
    """
    gateway = _build_gateway(ctx)

    async def _execute() -> ExecutionResult:
        async with gateway:
            return await gateway.execute(
                shell, command, working_dir=cwd, max_output_lines=max_lines, timeout=timeout
            )

    try:
        result = asyncio.run(_execute())
    except CmdGateException as e:
        console.print(f"[bold red]Error:[/bold red] {format_error_for_user(e)}")
        sys.exit(1)

    console.print(result.output, markup=False, highlight=False)

    execution_id = result.metadata.get("execution_id")
    if execution_id:
        console.print(f"\n[dim]execution_id: {execution_id}[/dim]")

    if result.is_error:
        sys.exit(1)


@cli.command()
@click.pass_context
def shells(ctx: click.Context) -> None:
    """List enabled shells and their security policy."""
    gateway = _build_gateway(ctx)
    summary = gateway.security_summary()

    if not summary:
        console.print("[yellow]No shells are enabled[/yellow]")
        return

    console.print("\n[bold]Enabled Shells[/bold]\n")

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Shell", style="green")
    table.add_column("Type")
    table.add_column("Executable")
    table.add_column("Timeout", justify="right")
    table.add_column("Max length", justify="right")
    table.add_column("Allowed paths")

    for name, policy in summary.items():
        paths = ", ".join(policy["allowed_paths"]) if policy["restrict_working_directory"] else "(any)"
        table.add_row(
            name,
            policy["type"],
            " ".join(policy["executable"]),
            f"{policy['command_timeout']}s",
            f"{policy['max_command_length']:,}",
            paths or "(none)",
        )

    console.print(table)
    console.print()


@cli.command("check-dirs")
@click.argument("directories", nargs=-1, required=True)
@click.option("--shell", "-s", default=None, help="Validate for this shell only")
@click.pass_context
def check_dirs(ctx: click.Context, directories: tuple[str, ...], shell: str | None) -> None:
    """Check DIRECTORIES against the allowed paths.

    Examples:
        cmdgate check-dirs /tmp ~/project
        cmdgate check-dirs /mnt/c/work --shell wsl
    """
    gateway = _build_gateway(ctx)

    try:
        report = gateway.validate_directories(list(directories), shell=shell)
    except CmdGateException as e:
        console.print(f"[bold red]Error:[/bold red] {format_error_for_user(e)}")
        sys.exit(1)

    for directory in report["valid"]:
        console.print(f"[green]✓[/green] {directory}")
    for item in report["invalid"]:
        console.print(f"[red]✗[/red] {item['directory']}")
        console.print(f"[dim red]    {item['reason']}[/dim red]")

    if report["invalid"]:
        sys.exit(1)


@cli.command("init-config")
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--force", "-f", is_flag=True, help="Overwrite an existing file")
def init_config(path: str, force: bool) -> None:
    """Write the default configuration to PATH as JSON."""
    target = Path(path)
    if target.exists() and not force:
        console.print(f"[yellow]File already exists:[/yellow] {target}")
        console.print("[dim]Use --force to overwrite[/dim]")
        sys.exit(1)

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(GatewayConfig().to_dict(), indent=2) + "\n", encoding="utf-8")
    console.print(Panel(f"[bold green]✓ Wrote default config[/bold green]\n{target}", expand=False))


def main() -> None:
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
