"""Configuration module."""

from cadence.config.loader import find_config_path, get_default_config, load_config
from cadence.config.models import (
    ActionConfig,
    ActionOptionsOverride,
    CadenceConfig,
    ConfigError,
    LoggingConfig,
)
from cadence.config.paths import get_cadence_home, get_config_path, get_logs_path

__all__ = [
    "ActionConfig",
    "ActionOptionsOverride",
    "CadenceConfig",
    "ConfigError",
    "LoggingConfig",
    "find_config_path",
    "get_cadence_home",
    "get_config_path",
    "get_default_config",
    "get_logs_path",
    "load_config",
]
