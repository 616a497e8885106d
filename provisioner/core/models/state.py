"""
HostState — the root state model.

This is the single document that captures what the provisioner last
observed and did on this host. It's serialized to
``<state_dir>/current.json`` and loaded on every run.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

SCHEMA_VERSION = 1


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StepState(BaseModel):
    """Last observed outcome of a step."""

    id: str
    status: str = ""  # applied, already-satisfied, failed, planned
    last_run_at: str | None = None
    error: str | None = None


class UnitState(BaseModel):
    """Runtime state of a service unit."""

    name: str
    registered: bool = False
    enabled: bool = False
    status: str = "unknown"  # active, inactive, failed, unknown
    last_checked_at: str | None = None


class RunRecord(BaseModel):
    """Summary of the last provisioning run."""

    operation_id: str = ""
    plan: str = ""
    started_at: str = ""
    ended_at: str = ""
    state: str = ""  # completed, failed
    dry_run: bool = False
    steps_total: int = 0
    steps_applied: int = 0
    steps_satisfied: int = 0
    failed_step: str | None = None
    error: str | None = None


class HostState(BaseModel):
    """Root state model — serialized to current.json.

    It's disposable and reproducible: delete it and the next run
    rebuilds it from the host itself, since every step re-checks
    its predicate.
    """

    # ── Schema ───────────────────────────────────────────────────
    schema_version: int = SCHEMA_VERSION

    # ── Identity ─────────────────────────────────────────────────
    role: str = ""

    # ── Timestamps ───────────────────────────────────────────────
    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    # ── Component state ──────────────────────────────────────────
    steps: dict[str, StepState] = Field(default_factory=dict)
    units: dict[str, UnitState] = Field(default_factory=dict)

    # ── Last run ─────────────────────────────────────────────────
    last_run: RunRecord = Field(default_factory=RunRecord)

    # ── Extensible metadata ──────────────────────────────────────
    metadata: dict[str, Any] = Field(default_factory=dict)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()

    def set_step_state(self, step_id: str, **kwargs: Any) -> None:
        """Update or create a step state entry."""
        if step_id in self.steps:
            for key, value in kwargs.items():
                setattr(self.steps[step_id], key, value)
        else:
            self.steps[step_id] = StepState(id=step_id, **kwargs)

    def set_unit_state(self, name: str, **kwargs: Any) -> None:
        """Update or create a unit state entry."""
        if name in self.units:
            for key, value in kwargs.items():
                setattr(self.units[name], key, value)
        else:
            self.units[name] = UnitState(name=name, **kwargs)
