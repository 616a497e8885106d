"""
Step and Receipt models — the execution contract.

Steps represent requested units of provisioning work. Receipts represent
results. This is the fundamental I/O contract between the runner and
adapters: the runner sends Steps, adapters return Receipts. Never exceptions.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

StepStatus = Literal["applied", "already-satisfied", "failed", "planned"]

DEFAULT_STEP_TIMEOUT = 1800


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Step(BaseModel):
    """A single idempotent unit of provisioning work.

    The adapter named here is the step's capability (package, user,
    filesystem, command). Its ``check()`` is the idempotency predicate,
    evaluated against ``params`` before the action runs.
    """

    id: str                         # unique within a plan
    name: str = ""                  # human-readable name
    adapter: str                    # which capability handles this
    params: dict[str, Any] = Field(default_factory=dict)
    timeout: int = DEFAULT_STEP_TIMEOUT

    @property
    def label(self) -> str:
        return self.name or self.id


class Receipt(BaseModel):
    """Result of running one step.

    Receipts capture the full outcome of a step. The adapter
    NEVER raises exceptions — failures are captured here.
    """

    adapter: str
    step_id: str
    status: StepStatus = "applied"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the step left the host in its goal state."""
        return self.status in ("applied", "already-satisfied")

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def satisfied(self) -> bool:
        """Whether the step was a no-op because the predicate held."""
        return self.status == "already-satisfied"

    @classmethod
    def applied(
        cls,
        adapter: str,
        step_id: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create an applied receipt."""
        return cls(
            adapter=adapter,
            step_id=step_id,
            status="applied",
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        adapter: str,
        step_id: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            adapter=adapter,
            step_id=step_id,
            status="failed",
            error=error,
            **kwargs,
        )

    @classmethod
    def already_satisfied(
        cls,
        adapter: str,
        step_id: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create an already-satisfied receipt."""
        return cls(
            adapter=adapter,
            step_id=step_id,
            status="already-satisfied",
            output=reason,
            **kwargs,
        )

    @classmethod
    def planned(
        cls,
        adapter: str,
        step_id: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a dry-run receipt: the step would have been applied."""
        return cls(
            adapter=adapter,
            step_id=step_id,
            status="planned",
            output=reason,
            **kwargs,
        )
