"""
Status use case — last run from state + live unit status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from provisioner.core.config.loader import ConfigError, load_settings
from provisioner.core.models.settings import HostSettings
from provisioner.core.models.state import HostState
from provisioner.core.persistence.audit import AuditEntry, AuditWriter
from provisioner.core.persistence.state_file import default_state_path, load_state
from provisioner.core.plans.platform_host import UNIT_NAMES
from provisioner.core.services.units import ServiceUnitManager

logger = logging.getLogger(__name__)


@dataclass
class StatusResult:
    """Aggregated host status."""

    settings: HostSettings | None = None
    state: HostState | None = None
    state_path: Path | None = None
    units: dict[str, str] = field(default_factory=dict)
    recent_runs: list[AuditEntry] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        result: dict = {}
        if self.error:
            result["error"] = self.error
            return result

        if self.settings:
            result["role"] = self.settings.role
            result["platform"] = {
                "version": self.settings.platform.version,
                "home": self.settings.platform.home,
                "port": self.settings.platform.port,
            }

        result["state_path"] = str(self.state_path) if self.state_path else None
        if self.state:
            result["last_run"] = self.state.last_run.model_dump(mode="json")
            result["steps"] = {
                step_id: s.status for step_id, s in self.state.steps.items()
            }

        result["units"] = dict(self.units)
        result["recent_runs"] = [e.model_dump(mode="json") for e in self.recent_runs]
        return result


def get_status(
    config_path: Path | None = None,
    units: ServiceUnitManager | None = None,
    history: int = 5,
) -> StatusResult:
    """Get host status.

    Args:
        config_path: Optional explicit path to host.yml.
        units: Optional unit manager to query (built from settings otherwise).
        history: How many audit entries to include, newest last.

    Returns:
        StatusResult with the recorded last run and current unit status.
    """
    result = StatusResult()

    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        result.error = str(e)
        return result
    result.settings = settings

    state_path = default_state_path(Path(settings.state_dir))
    result.state_path = state_path
    result.state = load_state(state_path)
    try:
        result.recent_runs = AuditWriter(state_dir=Path(settings.state_dir)).read_recent(history)
    except OSError as e:
        logger.warning("Cannot read audit ledger: %s", e)

    manager = units or ServiceUnitManager(unit_dir=settings.unit_dir)
    for name in UNIT_NAMES:
        result.units[name] = manager.status(name).value

    return result
