"""
Step runner — the central execution loop.

Takes an ordered list of steps and runs them one at a time through the
adapter registry. Each step's predicate is checked first; satisfied
steps are skipped. The first failure halts the run: nothing after it
executes and nothing before it is undone.

Flow:
    steps → check predicate → apply → collect receipts → halt on first failure
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.errors import ExternalCommandFailure, StepFailure
from provisioner.core.models.action import Receipt, Step

logger = logging.getLogger(__name__)

_STATUS_MARKERS = {
    "applied": "✓",
    "already-satisfied": "=",
    "planned": "~",
    "failed": "✗",
}


@dataclass
class RunReport:
    """Receipts of one runner pass, in execution order."""

    operation_id: str = ""
    receipts: list[Receipt] = field(default_factory=list)
    units: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.receipts)

    @property
    def statuses(self) -> list[str]:
        return [r.status for r in self.receipts]

    @property
    def applied(self) -> int:
        return sum(1 for r in self.receipts if r.status == "applied")

    @property
    def satisfied(self) -> int:
        return sum(1 for r in self.receipts if r.satisfied)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.receipts if r.failed)

    @property
    def all_ok(self) -> bool:
        return self.failed == 0

    @property
    def converged(self) -> bool:
        """True when every step was already satisfied."""
        return all(r.satisfied for r in self.receipts)

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "total": self.total,
            "applied": self.applied,
            "already_satisfied": self.satisfied,
            "failed": self.failed,
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
            "units": self.units,
        }


def check_unique_ids(steps: list[Step]) -> None:
    seen: set[str] = set()
    for step in steps:
        if step.id in seen:
            raise ValueError(f"Duplicate step id: '{step.id}'")
        seen.add(step.id)


def _failure_from(step: Step, receipt: Receipt, report: RunReport) -> StepFailure:
    cause = receipt.error or "unknown error"
    failure = StepFailure(step.id, cause, report)
    return_code = receipt.metadata.get("return_code")
    if return_code is not None:
        command = receipt.metadata.get("command") or step.label
        failure.__cause__ = ExternalCommandFailure(command, return_code, cause)
    return failure


def run_steps(
    steps: list[Step],
    registry: AdapterRegistry,
    dry_run: bool = False,
    report: RunReport | None = None,
) -> RunReport:
    """Run steps in declaration order, fail-fast.

    Args:
        steps: Ordered steps; ids must be unique.
        registry: Adapter registry for dispatch.
        dry_run: If True, evaluate predicates only.
        report: Optional report to append to (receipts accumulate across passes).

    Returns:
        RunReport with one receipt per step.

    Raises:
        StepFailure: On the first failed step. ``report`` on the exception
            holds every receipt up to and including the failure.
        ValueError: If two steps share an id.
    """
    check_unique_ids(steps)
    if report is None:
        report = RunReport(operation_id=generate_operation_id())

    for step in steps:
        receipt = registry.execute_step(step, dry_run=dry_run)
        report.receipts.append(receipt)

        logger.info(
            "%s %s → %s",
            _STATUS_MARKERS.get(receipt.status, "?"),
            step.id,
            receipt.status,
        )

        if receipt.failed:
            logger.error("Step '%s' failed: %s", step.id, receipt.error)
            raise _failure_from(step, receipt, report)

    return report


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"
