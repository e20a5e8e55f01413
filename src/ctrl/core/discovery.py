# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/core/discovery.py

"""Control directory discovery.

Walks up from the invocation directory looking for a `.ctrl` marker and
works out where the work tree starts and how far below it the command was
run.
"""

import os
import posixpath
from dataclasses import dataclass, replace
from pathlib import Path, PurePosixPath
from typing import Mapping, Optional

from loguru import logger

from ctrl.config.manager import CONTROL_DIR_NAME, PROJECT_CFG, ProjectConfig, load_project_config
from ctrl.system.exceptions import ConfigError, ControlDirectoryNotFound

MARKER_FILE_KEY = "ctrldir:"


@dataclass(frozen=True)
class ExecutionContext:
    """Where a command runs, built fresh for each dispatch."""
    control_dir: Optional[Path] = None
    work_tree: Optional[Path] = None
    prefix: str = ""
    super_prefix: Optional[str] = None
    inside_control_dir: bool = False

    def __post_init__(self):
        if self.work_tree is None and self.prefix:
            raise ValueError("prefix must be empty when there is no work tree")
        if self.inside_control_dir and self.work_tree is not None:
            raise ValueError("there is no work tree inside the control directory")

    @property
    def found(self) -> bool:
        return self.control_dir is not None

    @property
    def is_bare(self) -> bool:
        return self.control_dir is not None and self.work_tree is None and not self.inside_control_dir

    @property
    def display_prefix(self) -> str:
        """The prefix as seen from the outermost invocation (super prefix first)."""
        parts = [p.strip("/") for p in (self.super_prefix, self.prefix) if p and p.strip("/")]
        return "/".join(parts)

    def with_super_prefix(self, super_prefix: Optional[str]) -> "ExecutionContext":
        return replace(self, super_prefix=super_prefix)

    def prefix_path(self, path: str) -> str:
        """Convert a path given relative to the invocation directory into one
        relative to the top of the work tree."""
        if self.work_tree is not None and os.path.isabs(path):
            try:
                return Path(path).resolve().relative_to(self.work_tree).as_posix()
            except ValueError:
                return path
        joined = posixpath.normpath(posixpath.join(self.prefix, path)) if self.prefix else posixpath.normpath(path)
        return joined


def _relative_prefix(start: Path, work_tree: Path) -> str:
    try:
        relative = start.relative_to(work_tree)
    except ValueError:
        # Invoked from outside an explicitly configured work tree.
        return ""
    return "" if relative == Path(".") else PurePosixPath(*relative.parts).as_posix()


class RepositoryLocator:
    """Finds the control directory and work tree for a starting directory.

    Environment:
        CTRL_DIR: use this control directory instead of searching
        CTRL_WORK_TREE: use this work-tree root
        CTRL_CEILING_DIRECTORIES: directories the upward search never enters
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = os.environ if environ is None else environ

    def locate(self, start: Optional[Path] = None) -> ExecutionContext:
        """Resolve control directory, work tree and prefix for `start`.

        Raises:
            ControlDirectoryNotFound: If no control directory is found
        """
        start = (start or Path.cwd()).resolve()

        explicit_dir = self.environ.get("CTRL_DIR")
        if explicit_dir:
            control_dir = (start / explicit_dir).resolve()
            if not control_dir.is_dir():
                raise ControlDirectoryNotFound(start, f"not a ctrl repository: '{explicit_dir}'")
            config = self._load_config(control_dir)
            work_tree = self._work_tree_for(control_dir, config, start)
            if work_tree is None and not config.core.bare:
                # Explicit control dir without a work tree: the cwd is the top.
                work_tree = start
            logger.debug(f"Using control directory from CTRL_DIR: {control_dir}")
            return self._build(control_dir, work_tree, start)

        ceilings = self._ceilings()
        for directory in [start, *start.parents]:
            control_dir = self._read_marker(directory, start)
            if control_dir is not None:
                config = self._load_config(control_dir)
                work_tree = self._work_tree_for(control_dir, config, start)
                if work_tree is None and not config.core.bare:
                    work_tree = directory
                logger.debug(f"Found control directory {control_dir} (work tree: {work_tree})")
                return self._build(control_dir, work_tree, start)

            if self._is_bare_control_dir(directory):
                logger.debug(f"Found bare control directory {directory}")
                return self._build(directory, None, start)

            # A ceiling is never entered from below; starting in one searches only it.
            if directory in ceilings or directory.parent in ceilings:
                logger.debug(f"Stopping discovery at {directory} (ceiling directories: {sorted(map(str, ceilings))})")
                break

        raise ControlDirectoryNotFound(start)

    def _read_marker(self, directory: Path, start: Path) -> Optional[Path]:
        """Return the control directory a `.ctrl` marker points at, if any."""
        marker = directory / CONTROL_DIR_NAME
        if marker.is_dir():
            return marker
        if not marker.is_file():
            return None

        try:
            first_line = marker.read_text(encoding="utf-8").splitlines()[:1]
        except (UnicodeDecodeError, OSError) as e:
            raise ControlDirectoryNotFound(start, f"invalid ctrldir file format: {marker}") from e
        if not first_line or not first_line[0].startswith(MARKER_FILE_KEY):
            raise ControlDirectoryNotFound(start, f"invalid ctrldir file format: {marker}")
        pointer = first_line[0][len(MARKER_FILE_KEY):].strip()
        if not pointer:
            raise ControlDirectoryNotFound(start, f"invalid ctrldir file format: {marker}")
        target = (directory / pointer).resolve()
        if not target.is_dir():
            raise ControlDirectoryNotFound(start, f"not a ctrl repository: {target}")
        return target

    def _is_bare_control_dir(self, directory: Path) -> bool:
        if not (directory / PROJECT_CFG).is_file():
            return False
        try:
            return load_project_config(directory).core.bare
        except ConfigError as e:
            logger.debug(f"Ignoring unreadable {directory / PROJECT_CFG}: {e}")
            return False

    def _load_config(self, control_dir: Path) -> ProjectConfig:
        try:
            return load_project_config(control_dir)
        except ConfigError as e:
            logger.warning(f"Ignoring invalid project config: {e}")
            return ProjectConfig()

    def _work_tree_for(self, control_dir: Path, config: ProjectConfig, start: Path) -> Optional[Path]:
        """Explicit work tree from the environment or core.worktree, if any."""
        env_tree = self.environ.get("CTRL_WORK_TREE")
        if env_tree:
            return (start / env_tree).resolve()
        if config.core.worktree is not None:
            if config.core.bare:
                logger.warning("core.bare and core.worktree do not make sense together; ignoring core.worktree")
                return None
            return (control_dir / config.core.worktree).resolve()
        return None

    def _ceilings(self) -> set[Path]:
        raw = self.environ.get("CTRL_CEILING_DIRECTORIES", "")
        ceilings = set()
        for entry in raw.split(os.pathsep):
            if entry and os.path.isabs(entry):
                ceilings.add(Path(entry).resolve())
        return ceilings

    def _build(self, control_dir: Path, work_tree: Optional[Path], start: Path) -> ExecutionContext:
        if work_tree is None:
            return ExecutionContext(control_dir=control_dir)
        if start == control_dir or control_dir in start.parents:
            # Nothing inside the control directory belongs to the work tree.
            logger.debug(f"{start} is inside control directory {control_dir}, no work tree")
            return ExecutionContext(control_dir=control_dir, inside_control_dir=True)
        return ExecutionContext(
            control_dir=control_dir,
            work_tree=work_tree,
            prefix=_relative_prefix(start, work_tree),
        )
