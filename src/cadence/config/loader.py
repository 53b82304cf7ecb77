"""Configuration loading from TOML files."""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from cadence.config.models import CadenceConfig, ConfigError
from cadence.config.paths import get_config_path


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("cadence.toml"),  # Current directory
        get_config_path(),  # ~/.cadence/config.toml (or CADENCE_HOME)
        Path("/etc/cadence/config.toml"),  # System-wide
    ]


def find_config_path(path: Path | None = None) -> Path:
    """Resolve the config file to load.

    Raises:
        FileNotFoundError: If an explicit path is missing or no default exists.
    """
    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        return config_path

    default_paths = _get_default_config_paths()
    for default_path in default_paths:
        expanded = default_path.expanduser()
        if expanded.exists():
            return expanded

    raise FileNotFoundError(
        f"No config file found. Searched: {', '.join(str(p) for p in default_paths)}"
    )


def load_config(path: Path | None = None) -> CadenceConfig:
    """Load configuration from a TOML file.

    Args:
        path: Explicit path to config file. If None, searches default locations.

    Returns:
        Validated CadenceConfig instance.

    Raises:
        FileNotFoundError: If no config file is found.
        ConfigError: If the file is not valid TOML or fails validation.
    """
    config_path = find_config_path(path)

    try:
        with config_path.open("rb") as f:
            raw_config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        return CadenceConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}:\n{e}") from e


def get_default_config() -> CadenceConfig:
    """Get an empty configuration for development/testing."""
    return CadenceConfig()
