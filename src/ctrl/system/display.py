# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/system/display.py

# Standard library imports
from typing import Iterable

# Third-party imports
from rich.console import Console
from rich.markup import escape
from rich.table import Table

# Local imports
from ctrl.core.registry import CommandEntry

USAGE_STRING = (
    "ctrl [--version] [-p | --paginate | -P | --no-pager] [--super-prefix=<path>]\n"
    "            [-C <path>] [--debug] <command> [<args>]"
)
MORE_INFO_STRING = "See 'ctrl help' for the list of available commands."


def display_fatal(console: Console, message: str) -> None:
    """Print a fatal error the way every dispatcher failure is reported."""
    console.print(f"[red]fatal:[/red] {escape(message)}", soft_wrap=True, highlight=False)


def display_usage(console: Console) -> None:
    console.print(f"usage: {escape(USAGE_STRING)}", soft_wrap=True, highlight=False)
    console.print("")
    console.print(MORE_INFO_STRING, soft_wrap=True, highlight=False)


def display_unknown_command(console: Console, name: str) -> None:
    console.print(
        f"ctrl: '{escape(name)}' is not a ctrl command. See 'ctrl help'.",
        soft_wrap=True,
        highlight=False,
    )


def command_table(entries: Iterable[CommandEntry], verbose: bool = False) -> Table:
    """Build a rich Table listing commands.

    Args:
        entries: Registered commands, in registration order
        verbose: Include the capabilities each command declares

    Returns:
        Rich Table object ready for display
    """
    table = Table(box=None, show_header=verbose, pad_edge=False)
    table.add_column("Command", style="bold")
    table.add_column("Description")
    if verbose:
        table.add_column("Capabilities", style="dim")

    for entry in entries:
        row = [entry.name, entry.summary]
        if verbose:
            row.append(", ".join(entry.capabilities.describe()) or "-")
        table.add_row(*row)
    return table


def display_config_items(console: Console, items: Iterable[tuple[str, str]]) -> None:
    for key, value in items:
        console.print(f"{key}={value}", markup=False, highlight=False, soft_wrap=True)
