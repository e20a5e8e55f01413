# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/system/logging_setup.py

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from ctrl.config.manager import load_merged_user_config


def detect_repo_name() -> Optional[str]:
    """Detect current repository name from the discovered work tree or control directory.

    Returns:
        Repository name or None if not detected
    """
    try:
        from ctrl.core.discovery import RepositoryLocator

        context = RepositoryLocator().locate(Path.cwd())
        root = context.work_tree or context.control_dir
        if root is not None and root.name:
            return root.name.lstrip(".") or None

    except Exception:
        pass
    cwd = Path.cwd()
    if cwd.name and cwd.name != "/":
        return cwd.name

    return None


def setup_logging(debug: bool = False) -> None:
    """Setup loguru logging for the entire application.

    Configures:
    - Console output: WARNING+ only (DEBUG+ with debug=True)
    - File output: DEBUG+ if local_log is configured in user config
    """
    logger.remove()

    logger.add(
        sys.stderr,
        level="DEBUG" if debug else "WARNING",
        format="<level>{level}</level>: {message}",
        colorize=True
    )

    # File handler: DEBUG+ if configured
    try:
        user_config = load_merged_user_config()
    except FileNotFoundError:
        return
    except Exception as e:
        logger.warning(f"Failed to read user config for logging: {e}")
        return

    if not user_config.local_log:
        return

    try:
        log_dir = Path(user_config.local_log)
        log_dir.mkdir(parents=True, exist_ok=True)

        repo_name = detect_repo_name() or "global"
        log_file = log_dir / f"ctrl-{repo_name}.log"

        logger.add(
            log_file,
            level="DEBUG",
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}",
            rotation="10 MB",
            retention="30 days",
            compression="gz"
        )
        logger.debug(f"File logging enabled: {log_file}")

    except Exception as e:
        # Don't fail the entire application if logging setup fails
        logger.warning(f"Failed to setup file logging: {e}")
