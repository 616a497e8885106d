"""
Configuration loader — reads host.yml into HostSettings.

This is the primary entry point for loading host configuration.
It reads YAML, validates against Pydantic schemas, and returns
typed settings. A missing file is not an error: the built-in
defaults describe the standard single-node host.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from provisioner.core.models.settings import HostSettings

logger = logging.getLogger(__name__)

# Default config filename
SETTINGS_FILE = "host.yml"


class ConfigError(Exception):
    """Raised when host configuration is invalid or unreadable."""


def find_settings_file(start_dir: Path | None = None) -> Path | None:
    """Search for host.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to host.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / SETTINGS_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_settings(path: Path | None = None, search: bool = True) -> HostSettings:
    """Load and validate host settings.

    Args:
        path: Explicit path to host.yml. Must exist if given.
        search: When ``path`` is None, look upward from cwd.

    Returns:
        Validated HostSettings (defaults when no file is found).

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    if path is None and search:
        path = find_settings_file()

    if path is None:
        logger.info("No %s found — using built-in defaults", SETTINGS_FILE)
        return HostSettings()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading host config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "host" key or be flat
    host_data = data["host"] if isinstance(data.get("host"), dict) else data

    try:
        settings = HostSettings.model_validate(host_data)
    except Exception as e:
        raise ConfigError(f"Invalid host configuration: {e}") from e

    logger.info("Loaded host settings for role '%s' from %s", settings.role, path)
    return settings
