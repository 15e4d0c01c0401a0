"""
User settings for swiftvm.

Settings are read from an optional ``settings.yaml`` in the swiftvm home
directory and layered over built-in defaults. Unknown keys are ignored with a
warning so that newer settings files keep working with older releases.

Example settings.yaml:
    api_url: https://www.swift.org/api
    timeout: 60
    max_retries: 8
    keys_url: https://www.swift.org/keys/all-keys.asc
"""

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict

import yaml

from swiftvm.core.exceptions import SettingsError

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Tunable behaviour of the catalog client, downloader and lock."""

    api_url: str = "https://www.swift.org/api"
    download_url: str = "https://download.swift.org"
    timeout: float = 30.0
    max_retries: int = 5
    backoff_base: float = 1.0
    lock_timeout: float = 10.0
    lock_retries: int = 3
    disk_space_multiplier: float = 3.0
    keys_url: str = "https://www.swift.org/keys/all-keys.asc"

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: str = "settings") -> "Settings":
        """
        Build settings from a mapping, validating value types.

        Raises:
            SettingsError: If a known key has a value of the wrong type
        """
        settings = cls()
        known = {f.name for f in fields(cls)}

        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown setting '{key}' in {source}")
                continue

            default = getattr(settings, key)
            if isinstance(default, str):
                if not isinstance(value, str):
                    raise SettingsError(f"Setting '{key}' in {source} must be a string")
            elif isinstance(value, bool) or not isinstance(value, (int, float)):
                raise SettingsError(f"Setting '{key}' in {source} must be a number")
            elif isinstance(default, int) and not isinstance(value, int):
                raise SettingsError(f"Setting '{key}' in {source} must be an integer")
            elif value < 0:
                raise SettingsError(f"Setting '{key}' in {source} must not be negative")

            setattr(settings, key, value)

        settings.api_url = settings.api_url.rstrip("/")
        settings.download_url = settings.download_url.rstrip("/")
        return settings


def load_yaml_config(config_file: Path, required: bool = False) -> Dict[str, Any]:
    """
    Load and parse a YAML configuration file.

    Args:
        config_file: Path to YAML configuration file
        required: If True, raise error if file doesn't exist

    Returns:
        Configuration dictionary (empty dict if file doesn't exist and not required)

    Raises:
        SettingsError: If the file is required but missing, is not valid YAML,
            or does not contain a mapping
    """
    if not config_file.exists():
        if required:
            raise SettingsError(f"Settings file not found: {config_file}", config_file)
        logger.debug(f"Settings file not found (optional): {config_file}")
        return {}

    logger.debug(f"Loading settings from {config_file}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise SettingsError(f"Invalid YAML in {config_file}: {e}", config_file) from e

    config = config or {}
    if not isinstance(config, dict):
        raise SettingsError(
            f"Settings file {config_file} must contain a mapping", config_file
        )
    return config


def load_settings(settings_file: Path) -> Settings:
    """Load settings from settings_file, falling back to defaults if absent."""
    data = load_yaml_config(settings_file, required=False)
    return Settings.from_dict(data, source=str(settings_file))


__all__ = ["Settings", "load_settings", "load_yaml_config"]
