# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/__init__.py

"""ctrl - command dispatch and execution-environment setup."""

__version__ = "0.3.0"
