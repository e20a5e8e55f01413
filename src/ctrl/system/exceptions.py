# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/system/exceptions.py

"""
ctrl-specific exception classes.

Resolution failures (unknown command, missing control directory, missing
work tree) are raised before any handler runs. ExecutionFailure is the one
exception handlers are expected to raise themselves.
"""

from pathlib import Path
from typing import Optional


class CtrlError(Exception):
    """Base exception for all ctrl-specific errors."""
    pass


class ConfigError(CtrlError):
    """Raised when configuration files cannot be read or validated."""
    pass


class RegistrationError(CtrlError):
    """Raised when the command table is inconsistent (duplicates, bad capability sets)."""
    pass


# === DISPATCH RESOLUTION ERRORS ===

class UnknownCommand(CtrlError):
    """Raised when a command name is not in the registry."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"'{name}' is not a ctrl command")


class UnsupportedSuperPrefix(CtrlError):
    """Raised when --super-prefix is given to a command that cannot honour it."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"{name} doesn't support --super-prefix")


class ControlDirectoryNotFound(CtrlError):
    """Raised when no control directory exists at or above the start directory."""

    def __init__(self, start: Path, message: Optional[str] = None):
        self.start = start
        super().__init__(
            message or f"not a ctrl repository (or any of the parent directories): {start}"
        )


class WorkTreeRequired(CtrlError):
    """Raised when a command needs a work tree but the control directory is bare."""

    def __init__(self, control_dir: Path):
        self.control_dir = control_dir
        super().__init__(f"this operation must be run in a work tree (control dir: {control_dir})")


# === HANDLER ERRORS ===

class ExecutionFailure(CtrlError):
    """Raised by a handler to abort with a human-readable message."""
    pass



class PagerError(CtrlError):
    """Raised when the pager process cannot be started."""

    def __init__(self, message: str, program: Optional[str] = None):
        self.program = program
        super().__init__(message)
