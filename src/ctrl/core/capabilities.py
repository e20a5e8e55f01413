# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/core/capabilities.py

"""Per-command setup requirements declared at registration time."""

from dataclasses import dataclass, fields

from ctrl.system.exceptions import RegistrationError


@dataclass(frozen=True)
class Capabilities:
    """What a command needs from the dispatcher before its handler runs.

    requires_control_dir:
        Abort unless a control directory is found. chdir to the top of the
        work tree when there is one.
    requires_control_dir_gently:
        Look for a control directory and chdir as above when one is found,
        but run the handler either way.
    uses_pager:
        Page output by default when stdout is a terminal.
    requires_work_tree:
        Refuse to run in a bare control directory. Ignored unless one of the
        discovery flags is set.
    supports_super_prefix:
        The command accepts --super-prefix.
    delays_pager_config:
        The dispatcher does not consult pager.<cmd>; the handler asks for a
        pager itself when it knows whether it wants one.
    """
    requires_control_dir: bool = False
    requires_control_dir_gently: bool = False
    uses_pager: bool = False
    requires_work_tree: bool = False
    supports_super_prefix: bool = False
    delays_pager_config: bool = False

    def __post_init__(self):
        if self.requires_control_dir and self.requires_control_dir_gently:
            raise RegistrationError(
                "requires_control_dir and requires_control_dir_gently are mutually exclusive"
            )

    @property
    def discovers(self) -> bool:
        """True when the dispatcher should look for a control directory."""
        return self.requires_control_dir or self.requires_control_dir_gently

    @property
    def needs_work_tree(self) -> bool:
        return self.requires_work_tree and self.discovers

    def describe(self) -> list[str]:
        """Names of the capabilities that are set, in declaration order."""
        return [f.name for f in fields(self) if getattr(self, f.name)]
