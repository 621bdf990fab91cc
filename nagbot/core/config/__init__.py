"""Configuration module."""

from nagbot.core.config.loader import load_config
from nagbot.core.config.schema import Config, ConfigError

__all__ = ["Config", "ConfigError", "load_config"]
