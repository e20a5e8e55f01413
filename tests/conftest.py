# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/conftest.py

"""
Shared test fixtures for the ctrl test suite.

Every test runs with ctrl's environment variables cleared, a private home
directory, and a discovery ceiling at tmp_path so nothing above the test
directory can be mistaken for a control directory.
"""

import sys
from typing import Optional

import pytest
from loguru import logger

from ctrl.config.manager import ConfigStack, UserConfig
from ctrl.core.dispatcher import Dispatcher
from ctrl.core.registry import CommandEntry, CommandRegistry

CTRL_ENV_VARS = (
    "CTRL_DIR",
    "CTRL_WORK_TREE",
    "CTRL_CEILING_DIRECTORIES",
    "CTRL_PAGER",
    "CTRL_PAGER_IN_USE",
    "CTRL_CONFIG_HOME",
    "XDG_CONFIG_HOME",
    "PAGER",
)


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Clear ctrl environment, fake the home directory, fence discovery."""
    for var in CTRL_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr("pathlib.Path.home", lambda: home)
    monkeypatch.setenv("CTRL_CEILING_DIRECTORIES", str(tmp_path))
    # Saves the original cwd so chdir() done by the dispatcher is undone.
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def work_tree(tmp_path):
    """root/.ctrl control directory with root/sub/dir below it."""
    root = tmp_path / "root"
    (root / ".ctrl").mkdir(parents=True)
    (root / "sub" / "dir").mkdir(parents=True)
    return root


@pytest.fixture
def bare_repo(tmp_path):
    """A bare control directory: declares core.bare, has no work tree."""
    bare = tmp_path / "project.ctrl"
    bare.mkdir()
    (bare / "config.yml").write_text("core:\n  bare: true\n")
    return bare


@pytest.fixture
def empty_dir(tmp_path):
    """A directory with no control directory anywhere up to the ceiling."""
    nowhere = tmp_path / "nowhere" / "deep"
    nowhere.mkdir(parents=True)
    return nowhere


@pytest.fixture
def make_dispatcher():
    """Build a Dispatcher over handlers given as name -> (handler, Capabilities)."""

    def _make(commands: dict, user_config: Optional[UserConfig] = None, **kwargs) -> Dispatcher:
        registry = CommandRegistry(
            CommandEntry(name, handler, caps) for name, (handler, caps) in commands.items()
        )
        user = user_config if user_config is not None else UserConfig()
        kwargs.setdefault("config_factory", lambda control_dir: ConfigStack(control_dir, user_loader=lambda: user))
        return Dispatcher(registry, **kwargs)

    return _make


@pytest.fixture
def stdout_is_tty():
    """isatty replacement that treats only the current sys.stdout as a terminal."""
    return lambda stream: stream is sys.stdout


@pytest.fixture
def terminal_stdout(tmp_path, monkeypatch):
    """Replace sys.stdout with a real file a pager can be attached to."""
    out = open(tmp_path / "terminal.out", "w")
    monkeypatch.setattr(sys, "stdout", out)
    yield out
    out.close()


@pytest.fixture(autouse=True)
def reset_loguru():
    """Undo setup_logging() so sinks do not outlive the streams they write to."""
    yield
    logger.remove()
    logger.add(sys.stderr, level="WARNING")


@pytest.hookimpl(tryfirst=True)
def pytest_runtest_call(item):
    """Re-install terminal_stdout after pytest's output capture has resumed.

    Capture swaps sys.stdout back to its own stream between fixture setup and
    the test call, which would otherwise undo the terminal_stdout fixture.
    """
    out = getattr(item, "funcargs", {}).get("terminal_stdout")
    if out is not None:
        sys.stdout = out
