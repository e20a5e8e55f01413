# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/commands/discovery.py

"""Commands that report on the discovered control directory and work tree."""

import os
from pathlib import Path, PurePosixPath
from typing import Iterator, Sequence

from rich.console import Console

from ctrl.config.manager import CONTROL_DIR_NAME
from ctrl.core.dispatcher import Session
from ctrl.system.exceptions import ExecutionFailure


def _stdout() -> Console:
    return Console(soft_wrap=True, highlight=False)


def _bool_word(value: bool) -> str:
    return "true" if value else "false"


def rev_parse_command(args: Sequence[str], prefix: str, session: Session) -> int:
    """Answer questions about the repository layout.

    Options are answered in the order given, one line each.
    """
    context = session.context
    console = _stdout()

    for arg in args:
        if arg not in ("--show-prefix", "--show-toplevel", "--ctrl-dir",
                       "--is-inside-work-tree", "--is-inside-ctrl-dir", "--is-bare"):
            raise ExecutionFailure(f"unknown option: {arg}")

    if args and not context.found:
        raise ExecutionFailure("not a ctrl repository (or any of the parent directories)")

    for arg in args:
        if arg == "--show-prefix":
            shown = context.display_prefix
            console.print(f"{shown}/" if shown else "", markup=False)
        elif arg == "--show-toplevel":
            if context.work_tree is None:
                raise ExecutionFailure("this operation must be run in a work tree")
            console.print(str(context.work_tree), markup=False)
        elif arg == "--ctrl-dir":
            console.print(str(context.control_dir), markup=False)
        elif arg == "--is-inside-work-tree":
            console.print(_bool_word(context.work_tree is not None))
        elif arg == "--is-inside-ctrl-dir":
            console.print(_bool_word(context.inside_control_dir))
        elif arg == "--is-bare":
            console.print(_bool_word(context.is_bare))
    return 0


def _walk_files(root: Path, target: str) -> Iterator[str]:
    """Yield work-tree-relative POSIX paths of files at or below target."""
    path = root / target
    if path.is_file():
        yield PurePosixPath(target).as_posix()
        return
    for dirpath, dirnames, filenames in os.walk(path):
        dirnames[:] = sorted(d for d in dirnames if d != CONTROL_DIR_NAME)
        for filename in sorted(filenames):
            if filename == CONTROL_DIR_NAME:
                continue
            full = Path(dirpath) / filename
            yield full.relative_to(root).as_posix()


def ls_files_command(args: Sequence[str], prefix: str, session: Session) -> int:
    """List work-tree files below the invocation directory.

    Paths are shown relative to where the command was run unless
    --full-name is given.
    """
    full_name = False
    pathspecs = []
    for arg in args:
        if arg == "--full-name":
            full_name = True
        elif arg.startswith("-"):
            raise ExecutionFailure(f"unknown option: {arg}")
        else:
            pathspecs.append(arg)

    context = session.context
    root = context.work_tree
    targets = [(spec, context.prefix_path(spec)) for spec in pathspecs] or [(".", prefix or ".")]

    seen = set()
    listing = []
    for spec, target in targets:
        if os.path.isabs(target) or target == ".." or target.startswith("../") or not (root / target).exists():
            raise ExecutionFailure(f"pathspec '{spec}' did not match any files")
        for rel in _walk_files(root, target):
            if rel not in seen:
                seen.add(rel)
                listing.append(rel)

    console = _stdout()
    for rel in listing:
        shown = rel if full_name else os.path.relpath(rel, prefix or ".")
        console.print(PurePosixPath(shown).as_posix(), markup=False)
    return 0
