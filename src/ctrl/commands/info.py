# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/commands/info.py

"""
Informational commands: help, version and config.

These run with or without a control directory and never change anything.
"""

from importlib.metadata import PackageNotFoundError, version
from typing import Sequence

from rich.console import Console

from ctrl import __version__
from ctrl.core.dispatcher import Session
from ctrl.core.pager import PagerPolicy
from ctrl.system.display import command_table, display_config_items, display_usage
from ctrl.system.exceptions import ExecutionFailure


def _stdout() -> Console:
    return Console(soft_wrap=True, highlight=False)


def help_command(args: Sequence[str], prefix: str, session: Session) -> int:
    """List commands, or describe the ones named in args."""
    console = _stdout()
    registry = session.registry
    if registry is None:
        raise ExecutionFailure("no command table available")

    verbose = "--verbose" in args or "-v" in args
    names = [a for a in args if not a.startswith("-")]

    if not names:
        display_usage(console)
        console.print("")
        console.print(command_table(registry, verbose=verbose))
        return 0

    entries = [registry.get(n) for n in names]
    missing = [n for n, entry in zip(names, entries) if entry is None]
    if missing:
        raise ExecutionFailure(
            f"no such command: {', '.join(missing)} (commands: {', '.join(registry.names())})"
        )
    console.print(command_table(entries, verbose=True))
    return 0


def version_command(args: Sequence[str], prefix: str, session: Session) -> int:
    """Print the installed version."""
    try:
        pkg_version = version("ctrl")
    except PackageNotFoundError:
        pkg_version = __version__
    _stdout().print(f"ctrl version {pkg_version}", markup=False)
    return 0


def config_command(args: Sequence[str], prefix: str, session: Session) -> int:
    """Show configuration values.

    `config --list` pages its output (pager.config, on by default); looking up
    a single key never does, which is why this command delays its pager
    config instead of letting the dispatcher decide up front.
    """
    if not args:
        raise ExecutionFailure("usage: ctrl config (--list | <section>.<key>)")

    if args[0] in ("--list", "-l"):
        if len(args) > 1:
            raise ExecutionFailure("--list takes no arguments")
        session.request_pager(PagerPolicy.ON)
        display_config_items(_stdout(), session.config.items())
        return 0

    if args[0].startswith("-"):
        raise ExecutionFailure(f"unknown option: {args[0]}")
    if len(args) > 1:
        raise ExecutionFailure("only one key may be looked up at a time")

    value = session.config.get(args[0])
    if value is None:
        return 1
    _stdout().print(value, markup=False)
    return 0
