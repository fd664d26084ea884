#!/usr/bin/env python3
"""
nix-monitored - inspect and install the nix interceptor.

Usage:
    nix-monitored explain -- build .#hello     # What would `nix build .#hello` do?
    nix-monitored explain --as nix-shell -- -p hello
    nix-monitored config --json                # Resolved configuration
    nix-monitored install ~/.local/bin         # nix, nix-build, nix-shell symlinks

Nothing here executes the wrapped tool; `explain` only shows the plan.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
import shutil

from rich.console import Console
from rich.table import Table
import typer

from nix_monitored import __version__
from nix_monitored.config import ConfigError, default_config_path, load_config, save_setting
from nix_monitored.dispatch import make_plan
from nix_monitored.interceptor import find_tool_dir
from nix_monitored.notify import render_command

INTERCEPTOR_SCRIPT = "nix-monitored-intercept"

console = Console()

app = typer.Typer(
    name="nix-monitored",
    help="Inspect and install the nix output-monitor interceptor.",
    add_completion=False,
    no_args_is_help=True,
)


def _load_or_exit():
    try:
        return load_config()
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {e}")
        raise typer.Exit(1)


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def explain(
    args: list[str] = typer.Argument(None, help="Arguments as passed to the tool"),
    command: str = typer.Option("nix", "--as", help="Command name the tool is invoked as"),
    json_output: bool = typer.Option(False, "--json", help="JSON output"),
):
    """
    Show the strategy and the commands an invocation would run.

    Examples:
        nix-monitored explain -- run nixpkgs#hello -- --greeting hi
        nix-monitored explain -- --extra-experimental-features flakes develop
    """
    config = _load_or_exit()
    invocation = [command, *(args or [])]
    plan = make_plan(invocation, config.monitor)

    if json_output:
        print(
            json.dumps(
                {
                    "invocation": invocation,
                    "verb": plan.verb.name if plan.verb else None,
                    "strategy": plan.strategy.value,
                    "commands": plan.commands,
                },
                indent=2,
            )
        )
        return

    console.print(f"[bold]Invocation:[/bold] {render_command(invocation)}")
    console.print(f"[bold]Verb:[/bold] {plan.verb.name if plan.verb else '[dim](none)[/dim]'}")
    console.print(f"[bold]Strategy:[/bold] [cyan]{plan.strategy.value}[/cyan]")

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Command")
    for i, argv in enumerate(plan.commands, start=1):
        table.add_row(str(i), render_command(argv))
    console.print(table)


@app.command("config")
def show_config(
    json_output: bool = typer.Option(False, "--json", help="JSON output"),
):
    """Print the resolved configuration (file + environment)."""
    config = _load_or_exit()
    data = config.to_dict()
    if json_output:
        print(json.dumps(data, indent=2))
        return

    console.print(f"[dim]Source: {config.source or '(defaults)'}[/dim]")
    for section in ("monitor", "notify", "logging"):
        console.print(f"\n[bold][{section}][/bold]")
        for key, value in data[section].items():
            console.print(f"  {key} = {value!r}")


@app.command()
def install(
    directory: Path = typer.Argument(..., help="Directory to create the links in"),
    target: Path = typer.Option(
        None, "--target", help=f"Interceptor executable (default: {INTERCEPTOR_SCRIPT} on PATH)"
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Replace existing files"),
    record: bool = typer.Option(
        True, "--record/--no-record", help="Save the real tool's directory as monitor.path_prefix"
    ),
):
    """
    Create symlinks named after the tool's commands pointing at the interceptor.

    Put DIRECTORY ahead of the real tool on PATH. Unless monitor.path_prefix
    is already set, the directory of the real tool found on PATH is saved to
    the config file.
    """
    config = _load_or_exit()
    if target is None:
        found = shutil.which(INTERCEPTOR_SCRIPT)
        if not found:
            console.print(f"[red]Cannot find {INTERCEPTOR_SCRIPT} on PATH; pass --target.[/red]")
            raise typer.Exit(1)
        target = Path(found)

    real_dir = None
    if record and not config.monitor.path_prefix:
        skip = os.path.realpath(directory)
        search = os.pathsep.join(
            d for d in os.environ.get("PATH", "").split(os.pathsep)
            if d and os.path.realpath(d) != skip
        )
        real_dir = find_tool_dir(config.monitor.tool, search, {os.path.realpath(target)})
        if real_dir is None:
            console.print(
                f"[yellow]Real {config.monitor.tool} not found on PATH;[/yellow] "
                "set monitor.path_prefix by hand."
            )

    directory.mkdir(parents=True, exist_ok=True)
    names = [config.monitor.tool, *config.monitor.direct_commands]
    for name in names:
        link = directory / name
        if link.exists() or link.is_symlink():
            if not force:
                console.print(f"[yellow]Exists:[/yellow] {link} (use --force)")
                raise typer.Exit(1)
            link.unlink()
        link.symlink_to(target)
        console.print(f"[green]✓[/green] {link} -> {target}")

    if real_dir is not None:
        config_path = default_config_path(os.environ)
        try:
            save_setting(config_path, "monitor", "path_prefix", real_dir)
        except ConfigError as e:
            console.print(f"[red]Config error:[/red] {e}")
            raise typer.Exit(1)
        console.print(f"[green]✓[/green] monitor.path_prefix = {real_dir!r} ({config_path})")


@app.command()
def version():
    """Print the version."""
    print(__version__)


if __name__ == "__main__":
    app()
