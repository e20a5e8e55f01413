# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/fixtures/handlers.py

"""Handler doubles for dispatcher tests."""

from pathlib import Path
from typing import Optional


class RecordingHandler:
    """Handler double that remembers how it was called."""

    def __init__(self, status: Optional[int] = 0, action=None):
        self.status = status
        self.action = action
        self.calls = []

    def __call__(self, args, prefix, session):
        self.calls.append({
            "args": list(args),
            "prefix": prefix,
            "cwd": Path.cwd(),
            "session": session,
        })
        if self.action is not None:
            self.action(args, prefix, session)
        return self.status

    @property
    def called(self) -> bool:
        return bool(self.calls)
