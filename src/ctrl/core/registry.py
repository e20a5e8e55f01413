# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/core/registry.py

"""
Static command table.

Every command the process can dispatch is registered once, at start-up.
Lookup is by exact name; abbreviations and aliases belong to whatever
parses the command line before dispatch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Iterator, Optional, Protocol, Sequence

from ctrl.core.capabilities import Capabilities
from ctrl.system.exceptions import RegistrationError, UnknownCommand

if TYPE_CHECKING:
    from ctrl.core.dispatcher import Session


class Handler(Protocol):
    """Callable contract every command implementation satisfies.

    Args:
        args: Command arguments, not including the command name
        prefix: Path of the invocation directory relative to the work-tree
            root ("" at the root or when there is no work tree)
        session: Execution context, config and pager for this dispatch

    Returns:
        Exit status for the process

    Raises:
        ExecutionFailure: To abort with a message on standard error
    """

    def __call__(self, args: Sequence[str], prefix: str, session: Session) -> int:
        ...


@dataclass(frozen=True)
class CommandEntry:
    """One row of the command table."""
    name: str
    handler: Handler
    capabilities: Capabilities = field(default_factory=Capabilities)
    summary: str = ""

    def __post_init__(self):
        if not self.name or any(ch.isspace() for ch in self.name):
            raise RegistrationError(f"Invalid command name: {self.name!r}")
        if not callable(self.handler):
            raise RegistrationError(f"Handler for {self.name} is not callable")


class CommandRegistry:
    """Ordered, immutable mapping from command name to CommandEntry."""

    def __init__(self, entries: Iterable[CommandEntry]):
        self._entries: dict[str, CommandEntry] = {}
        for entry in entries:
            if entry.name in self._entries:
                raise RegistrationError(f"Duplicate command name: {entry.name}")
            self._entries[entry.name] = entry

    def lookup(self, name: str) -> CommandEntry:
        """Return the entry registered under exactly `name`.

        Raises:
            UnknownCommand: If no such command is registered
        """
        try:
            return self._entries[name]
        except KeyError:
            raise UnknownCommand(name) from None

    def get(self, name: str) -> Optional[CommandEntry]:
        return self._entries.get(name)

    def is_builtin(self, name: str) -> bool:
        return name in self._entries

    def names(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[CommandEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)
