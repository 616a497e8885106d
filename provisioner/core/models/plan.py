"""
Provisioning plan — the ordered composition for one host role.

A plan is built once from static settings and executed once per
invocation. Convergence across invocations comes from step
idempotency, not from re-running a plan object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, SecretStr

from provisioner.core.models.action import Step
from provisioner.core.models.service import ServiceUnitSpec


def _masked(value: Any) -> Any:
    """Replace secrets with their masked form, recursively."""
    if isinstance(value, SecretStr):
        return str(value)
    if isinstance(value, dict):
        return {k: _masked(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_masked(v) for v in value]
    return value


class PlanState(str, Enum):
    NOT_STARTED = "not-started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class LogRotateRule(BaseModel):
    """Declarative rule for the host's log-rotation facility."""

    name: str
    path_glob: str
    period: str = "daily"  # daily, weekly, monthly
    rotate: int = 7
    compress: bool = True
    missingok: bool = True
    notifempty: bool = True
    sharedscripts: bool = True


class ConfigTarget(BaseModel):
    """Where and from what the platform configuration file is rendered."""

    path: str
    defaults: dict[str, dict[str, Any]] = Field(default_factory=dict)
    overrides: dict[str, dict[str, Any]] = Field(default_factory=dict)
    owner: str | None = None
    group: str | None = None
    mode: str = "0640"


@dataclass
class ProvisioningPlan:
    """Steps, config render target and service units for one host role."""

    name: str = ""
    steps: list[Step] = field(default_factory=list)
    config: ConfigTarget | None = None
    units: list[ServiceUnitSpec] = field(default_factory=list)
    finalize_steps: list[Step] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)
    state: PlanState = PlanState.NOT_STARTED

    @property
    def all_steps(self) -> list[Step]:
        return [*self.steps, *self.finalize_steps]

    @property
    def total_steps(self) -> int:
        return len(self.steps) + len(self.finalize_steps) + (1 if self.config else 0)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "steps": [_masked(s.model_dump()) for s in self.steps],
            "config": _masked(self.config.model_dump()) if self.config else None,
            "units": [u.model_dump(mode="json") for u in self.units],
            "finalize_steps": [_masked(s.model_dump()) for s in self.finalize_steps],
            "notices": list(self.notices),
        }
