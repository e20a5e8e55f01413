# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/core/__init__.py

"""Dispatch core: capabilities, registry, discovery, pager and dispatcher."""
