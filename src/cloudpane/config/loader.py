"""Configuration loader with TOML support and merge capability."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cloudpane.config.schema import CloudpaneConfig
from cloudpane.core.errors import ConfigError

logger = logging.getLogger(__name__)

USER_CONFIG_PATH = Path.home() / ".config" / "cloudpane" / "config.toml"


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _expand_path(path: str | Path) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expandvars(str(path))).expanduser().resolve()


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a string to bool with a default."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{path}: invalid TOML: {e}") from e
    except OSError as e:
        raise ConfigError(f"{path}: {e}") from e


def load_config(
    config_path: Path | None = None,
    merge_user: bool = True,
    user_path: Path | None = None,
) -> CloudpaneConfig:
    """Load configuration with precedence.

    Priority (highest to lowest):
    1. Environment overrides (CLOUDPANE_PROJECT, CLOUDPANE_DEBUG)
    2. Provided config_path, or CLOUDPANE_CONFIG
    3. ~/.config/cloudpane/config.toml
    4. Built-in defaults (schema)

    Args:
        config_path: Explicit path to config file. Must exist.
        merge_user: Whether to merge the user config file.
        user_path: Override for the user config location (tests).

    Returns:
        Merged CloudpaneConfig instance.

    Raises:
        ConfigError: A file could not be parsed or the result is invalid.
    """
    env_config = os.environ.get("CLOUDPANE_CONFIG")
    if config_path is None and env_config:
        config_path = Path(env_config).expanduser()

    config_data: dict[str, Any] = {}

    if merge_user:
        path = user_path or USER_CONFIG_PATH
        if path.exists():
            config_data = _deep_merge(config_data, _read_toml(path))
            logger.debug(f"Loaded user config from {path}")

    if config_path is not None:
        if not config_path.exists():
            raise ConfigError(f"{config_path}: config file not found")
        config_data = _deep_merge(config_data, _read_toml(config_path))
        logger.debug(f"Loaded config from {config_path}")

    env_project = os.environ.get("CLOUDPANE_PROJECT")
    if env_project:
        config_data["project"] = env_project
    if "CLOUDPANE_DEBUG" in os.environ:
        config_data["debug"] = _parse_bool(os.environ.get("CLOUDPANE_DEBUG"))

    if "logging" in config_data and "file" in config_data["logging"]:
        config_data["logging"]["file"] = _expand_path(config_data["logging"]["file"])

    try:
        return CloudpaneConfig(**config_data)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {e}") from e
