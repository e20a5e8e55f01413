# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/config/manager.py

from __future__ import annotations

import os
from functools import cached_property
from pathlib import Path
from typing import Any, Callable, Final, Optional, Union

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator

from ctrl.system.exceptions import ConfigError


# ---- Constants ----

USER_CFG: Final = "ctrl.yml"
PROJECT_CFG: Final = "config.yml"
CONTROL_DIR_NAME: Final = ".ctrl"

_TRUE_WORDS: Final[frozenset[str]] = frozenset({"true", "yes", "on", "1"})
_FALSE_WORDS: Final[frozenset[str]] = frozenset({"false", "no", "off", "0"})

PagerSetting = Union[bool, str]


def _get_user_config_search_paths() -> tuple[Path, ...]:
    """Get config file search paths (ordered by priority: lowest to highest).

    Evaluated at call time so environment changes made by tests are honoured.
    """
    return (
        Path("/etc/ctrl") / USER_CFG,  # System defaults
        Path.home() / ".config" / "ctrl" / USER_CFG,  # User config
        Path(os.getenv("XDG_CONFIG_HOME", "")) / "ctrl" / USER_CFG,  # XDG override
        Path(os.getenv("CTRL_CONFIG_HOME", "")) / USER_CFG,  # Explicit override (highest priority)
    )


def parse_maybe_bool(value: Any) -> Optional[bool]:
    """Interpret a config value as a boolean, or None when it is not one."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return None


def _merge_sections(base: dict, override: dict) -> dict:
    """Merge override into base one level deep, so sections combine key by key."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def _read_yaml_mapping(path: Path) -> dict:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a mapping, got {type(data).__name__}")
    return data


def _load_merged_config_data(candidates: tuple[Path, ...]) -> dict:
    """Load and merge config data from candidate paths.

    Raises:
        FileNotFoundError: If no config files found
    """
    merged_data: dict = {}
    found_configs = []

    for candidate in candidates:
        if candidate.is_file() and candidate != Path("") / USER_CFG:  # Skip empty env vars
            try:
                data = _read_yaml_mapping(candidate)
            except ConfigError as e:
                logger.warning(f"Failed to load config from {candidate}: {e}")
                continue
            merged_data = _merge_sections(merged_data, data)
            found_configs.append(str(candidate))
            logger.debug(f"Loaded config from {candidate}")

    if not found_configs:
        raise FileNotFoundError(f"No {USER_CFG} found in any standard location")

    logger.debug(f"Merged config from: {', '.join(found_configs)}")
    return merged_data


# ---- Config Models ----

class CoreSettings(BaseModel):
    """The `core` section: repository layout and pager program."""
    bare: bool = False
    worktree: Optional[Path] = None
    pager: Optional[str] = None


class ControlConfig(BaseModel):
    """Settings shared by user and project config files."""
    core: CoreSettings = Field(default_factory=CoreSettings)
    pager: dict[str, PagerSetting] = Field(default_factory=dict)

    @field_validator("pager", mode="before")
    @classmethod
    def normalize_pager_settings(cls, value: Any) -> Any:
        """Turn boolean-looking strings into booleans; other strings name a pager program."""
        if not isinstance(value, dict):
            return value
        normalized = {}
        for command, setting in value.items():
            as_bool = parse_maybe_bool(setting)
            if as_bool is not None:
                normalized[str(command)] = as_bool
            elif isinstance(setting, str):
                normalized[str(command)] = setting
            else:
                raise ValueError(f"pager.{command} must be a boolean or a pager command")
        return normalized

    @classmethod
    def load(cls, config_path: Path):
        data = _read_yaml_mapping(config_path)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid config {config_path}: {e}") from e


class UserConfig(ControlConfig):
    """User configuration, merged from the system and personal search paths."""
    local_log: Optional[Path] = None


class ProjectConfig(ControlConfig):
    """Configuration stored inside a control directory."""
    pass


# ---- Loaders ----

def load_merged_user_config() -> UserConfig:
    """Load and merge user config from all locations (system defaults + user overrides)."""
    candidates = _get_user_config_search_paths()
    merged_data = _load_merged_config_data(candidates)
    try:
        return UserConfig.model_validate(merged_data)
    except ValidationError as e:
        raise ConfigError(f"Invalid user config: {e}") from e


def load_user_config_or_default() -> UserConfig:
    """Like load_merged_user_config, but an absent user config is an empty one."""
    try:
        return load_merged_user_config()
    except FileNotFoundError:
        logger.debug("No user config found, using defaults")
        return UserConfig()


def load_project_config(control_dir: Path) -> ProjectConfig:
    """Load <control_dir>/config.yml, or defaults when the file does not exist."""
    config_path = control_dir / PROJECT_CFG
    if not config_path.is_file():
        return ProjectConfig()
    return ProjectConfig.load(config_path)


# ---- Layered view ----

class ConfigStack:
    """Read-once view over user and project configuration.

    Nothing is read from disk until the first lookup. Project values override
    user values.
    """

    def __init__(
        self,
        control_dir: Optional[Path] = None,
        user_loader: Callable[[], UserConfig] = load_user_config_or_default,
    ):
        self.control_dir = control_dir
        self._user_loader = user_loader

    @cached_property
    def user(self) -> UserConfig:
        return self._user_loader()

    @cached_property
    def project(self) -> Optional[ProjectConfig]:
        if self.control_dir is None:
            return None
        return load_project_config(self.control_dir)

    def _layers(self) -> list[ControlConfig]:
        layers: list[ControlConfig] = [self.user]
        if self.project is not None:
            layers.append(self.project)
        return layers

    def pager_setting(self, command: str) -> Optional[PagerSetting]:
        """Return pager.<command>, or None when no layer sets it."""
        setting = None
        for layer in self._layers():
            if command in layer.pager:
                setting = layer.pager[command]
        return setting

    @property
    def core_pager(self) -> Optional[str]:
        program = None
        for layer in self._layers():
            if layer.core.pager:
                program = layer.core.pager
        return program

    def items(self) -> list[tuple[str, str]]:
        """Flatten every layer into dotted `section.key` pairs, later layers winning."""
        flat: dict[str, str] = {}
        for layer in self._layers():
            for key, value in layer.core.model_dump(exclude_defaults=True).items():
                flat[f"core.{key}"] = _format_value(value)
            for command, setting in layer.pager.items():
                flat[f"pager.{command}"] = _format_value(setting)
        return sorted(flat.items())

    def get(self, key: str) -> Optional[str]:
        return dict(self.items()).get(key)


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
