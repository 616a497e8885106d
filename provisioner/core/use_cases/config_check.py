"""
Config check use case — validate host.yml and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from provisioner.core.config.loader import ConfigError, find_settings_file, load_settings
from provisioner.core.errors import RenderError
from provisioner.core.models.settings import HostSettings
from provisioner.core.services.config_render import render

_MIN_PORT_UNPRIVILEGED = 1024


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    settings: HostSettings | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "role": self.settings.role if self.settings else None,
            "package_count": len(self.settings.packages) if self.settings else 0,
            "override_sections": sorted(self.settings.config_overrides) if self.settings else [],
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate host configuration and report issues.

    Args:
        config_path: Optional explicit path to host.yml.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_settings_file()
    if config_path is None:
        result.warnings.append("No host.yml found. Built-in defaults will be used.")
    result.config_path = config_path

    try:
        settings = load_settings(config_path, search=False)
        result.settings = settings
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    # Overrides must survive serialization
    try:
        render({}, settings.config_overrides)
    except RenderError as e:
        result.errors.append(f"config_overrides: {e}")

    # Semantic checks
    if not settings.packages:
        result.warnings.append("No OS packages listed. The platform interpreter must already be installed.")

    if settings.platform.port < _MIN_PORT_UNPRIVILEGED:
        result.warnings.append(
            f"Port {settings.platform.port} is privileged; the webserver runs as "
            f"'{settings.account.name}' and may not be able to bind it."
        )

    home = settings.platform.home
    if not home.startswith("/"):
        result.errors.append(f"platform.home must be an absolute path, got '{home}'")
    if not settings.platform.venv.startswith("/"):
        result.errors.append(f"platform.venv must be an absolute path, got '{settings.platform.venv}'")

    if settings.settle_seconds == 0:
        result.warnings.append("settle_seconds is 0: units are judged the moment they start.")

    result.valid = len(result.errors) == 0
    return result
