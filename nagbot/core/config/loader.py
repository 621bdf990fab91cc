"""Configuration loader: optional YAML file under env/.env overrides."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from nagbot.core.config.schema import Config, ConfigError

CONFIG_ENV_VAR = "NAGBOT_CONFIG"
DEFAULT_CONFIG_FILE = "config.yaml"


def load_config(config_path: str | Path | None = None) -> Config:
    """Build the Config for this process.

    The YAML file is taken from ``config_path``, else ``$NAGBOT_CONFIG``,
    else ``./config.yaml`` when present. A path that was asked for
    explicitly (argument or env) must exist; the cwd default is optional.

    Raises ConfigError for a missing requested file or a YAML document whose
    top level is not a mapping.
    """
    path = _resolve_path(config_path)
    yaml_data = _load_yaml(path) if path else {}
    if path:
        logger.debug(f"Config loaded from {path}")
    return Config(**yaml_data)


def _resolve_path(config_path: str | Path | None = None) -> Path | None:
    requested = config_path or os.environ.get(CONFIG_ENV_VAR)
    if requested:
        path = Path(requested)
        if not path.is_file():
            source = "config_path" if config_path else CONFIG_ENV_VAR
            raise ConfigError(f"Config file not found: {path} (from {source})")
        return path

    default = Path(DEFAULT_CONFIG_FILE)
    return default if default.is_file() else None


def _load_yaml(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Config file {path} must contain a mapping at the top level, "
            f"got {type(data).__name__}"
        )
    return data
