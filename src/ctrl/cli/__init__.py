# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/cli/__init__.py

"""Command Line Interface package for ctrl."""

from .main import main, app

__all__ = ['main', 'app']
