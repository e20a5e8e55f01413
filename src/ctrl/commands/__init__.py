# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/commands/__init__.py

"""Built-in commands and the static table that registers them."""

from ctrl.commands import discovery, info
from ctrl.core.capabilities import Capabilities
from ctrl.core.registry import CommandEntry, CommandRegistry

BUILTINS: tuple[CommandEntry, ...] = (
    CommandEntry(
        "config", info.config_command,
        Capabilities(requires_control_dir_gently=True, delays_pager_config=True),
        "Show configuration values",
    ),
    CommandEntry(
        "help", info.help_command,
        Capabilities(uses_pager=True),
        "List commands or describe one",
    ),
    CommandEntry(
        "ls-files", discovery.ls_files_command,
        Capabilities(requires_control_dir=True, requires_work_tree=True, uses_pager=True),
        "List files in the work tree",
    ),
    CommandEntry(
        "rev-parse", discovery.rev_parse_command,
        Capabilities(requires_control_dir_gently=True, supports_super_prefix=True),
        "Show control directory, work tree and prefix",
    ),
    CommandEntry(
        "version", info.version_command,
        Capabilities(),
        "Show the ctrl version",
    ),
)


def build_registry() -> CommandRegistry:
    return CommandRegistry(BUILTINS)


__all__ = ["BUILTINS", "build_registry"]
