# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/cli/main.py

"""
Command line front end.

Parses the global options, then hands the command name and the remaining
words, untouched, to the Dispatcher. Option parsing stops at the command
name so every later word belongs to the command.
"""

# Standard library imports
import os
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import List, Optional

# Third-party imports
import typer
from rich.console import Console

# Local imports
from ctrl import __version__
from ctrl.commands import build_registry
from ctrl.core.dispatcher import Dispatcher, ExitCode
from ctrl.core.pager import PagerGate
from ctrl.system.display import display_fatal, display_usage
from ctrl.system.logging_setup import setup_logging

app = typer.Typer(
    help="""ctrl - run a command inside its control directory

[bold blue]Commands:[/bold blue] run 'ctrl help' for the full list
""",
    rich_markup_mode="rich",
    add_completion=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        try:
            pkg_version = version("ctrl")
        except PackageNotFoundError:
            pkg_version = __version__
        Console().print(f"ctrl version {pkg_version}", markup=False)
        raise typer.Exit()


@app.command(context_settings={"allow_interspersed_args": False})
def run(
    command: Optional[str] = typer.Argument(None, help="Command to run"),
    args: Optional[List[str]] = typer.Argument(None, help="Arguments for the command"),
    show_version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True,
        help="Show version and exit"
    ),
    paginate: bool = typer.Option(False, "--paginate", "-p", help="Page output even if the command would not"),
    no_pager: bool = typer.Option(False, "--no-pager", "-P", help="Never page output"),
    super_prefix: Optional[str] = typer.Option(
        None, "--super-prefix", help="Path prefix of an outer invocation (nested use)"
    ),
    directory: Optional[Path] = typer.Option(None, "-C", help="Run as if started in this directory"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """Run COMMAND with ARGS after preparing its environment."""
    console = Console(stderr=True)

    if paginate and no_pager:
        display_fatal(console, "--paginate and --no-pager are mutually exclusive")
        raise typer.Exit(int(ExitCode.USAGE))

    if directory is not None:
        try:
            os.chdir(directory)
        except OSError as e:
            display_fatal(console, f"cannot change to '{directory}': {e.strerror or e}")
            raise typer.Exit(int(ExitCode.USAGE))

    # Logging follows -C: the log file is named for the repository found from here.
    setup_logging(debug=debug)

    if command is None:
        display_usage(console)
        raise typer.Exit(int(ExitCode.USAGE))

    gate = PagerGate()
    gate.override(True if paginate else False if no_pager else None)

    dispatcher = Dispatcher(build_registry(), gate=gate, console=console)
    raise typer.Exit(dispatcher.run(command, args or [], super_prefix=super_prefix))


def main() -> None:  # pragma: no cover - entry point
    """Entry point for the ctrl CLI application."""
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
