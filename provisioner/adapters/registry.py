"""
Adapter registry — central dispatch for all step capabilities.

The registry is the single point of adapter management. It handles
registration, lookup and step execution. The runner never talks to
adapters directly — always through the registry.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.errors import AlreadySatisfied
from provisioner.core.models.action import Receipt, Step

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Central registry and dispatcher for adapters.

    Features:
        - Register/unregister adapters by name
        - Evaluate the idempotency predicate before every action
        - Execute steps through the appropriate adapter
        - Query adapter availability
    """

    def __init__(self) -> None:
        self._adapters: dict[str, Adapter] = {}

    def register(self, adapter: Adapter) -> None:
        """Register an adapter.

        Args:
            adapter: The adapter instance to register.
        """
        name = adapter.name
        if name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", name)
        self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def unregister(self, name: str) -> None:
        """Remove an adapter from the registry."""
        self._adapters.pop(name, None)

    def get(self, name: str) -> Adapter | None:
        """Look up an adapter by name."""
        return self._adapters.get(name)

    def list_adapters(self) -> list[str]:
        """List all registered adapter names."""
        return list(self._adapters.keys())

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Get availability status of all registered adapters."""
        status = {}
        for name, adapter in self._adapters.items():
            try:
                available = adapter.is_available()
            except Exception:
                available = False
            status[name] = {
                "name": name,
                "available": available,
                "type": adapter.__class__.__name__,
            }
        return status

    def execute_step(self, step: Step, dry_run: bool = False) -> Receipt:
        """Run one step through its adapter.

        This is the main dispatch method. It:
        1. Resolves the adapter
        2. Validates the step's params
        3. Evaluates the idempotency predicate
        4. Executes (or, in dry-run, reports ``planned``)
        5. Returns a Receipt (never raises)
        """
        start_time = time.monotonic()
        context = ExecutionContext(step=step, dry_run=dry_run, params=step.params)

        adapter = self._adapters.get(step.adapter)
        if adapter is None:
            return Receipt.failure(
                adapter=step.adapter,
                step_id=step.id,
                error=f"No adapter registered for '{step.adapter}'",
            )

        # Validate
        try:
            is_valid, error_msg = adapter.validate(context)
        except Exception as e:
            return Receipt.failure(
                adapter=step.adapter,
                step_id=step.id,
                error=f"Validation error: {e}",
            )
        if not is_valid:
            return Receipt.failure(
                adapter=step.adapter,
                step_id=step.id,
                error=f"Validation failed: {error_msg}",
            )

        # Predicate
        try:
            satisfied, detail = adapter.check(context)
        except Exception as e:
            logger.error("Adapter %s raised during check: %s", step.adapter, e)
            return Receipt.failure(
                adapter=step.adapter,
                step_id=step.id,
                error=f"Predicate error: {e}",
            )

        if satisfied:
            receipt = Receipt.already_satisfied(
                adapter=step.adapter,
                step_id=step.id,
                reason=detail,
            )
        elif dry_run:
            receipt = Receipt.planned(
                adapter=step.adapter,
                step_id=step.id,
                reason=f"[dry-run] Would apply {step.adapter}:{step.id}",
                metadata={"dry_run": True, "detail": detail},
            )
        else:
            try:
                receipt = adapter.execute(context)
            except AlreadySatisfied as signal:
                receipt = Receipt.already_satisfied(
                    adapter=step.adapter,
                    step_id=step.id,
                    reason=signal.reason,
                )
            except Exception as e:
                # Adapters should never raise, but defense in depth
                logger.error("Adapter %s raised during execution: %s", step.adapter, e)
                receipt = Receipt.failure(
                    adapter=step.adapter,
                    step_id=step.id,
                    error=f"Unexpected error: {e}",
                )

        receipt.duration_ms = int((time.monotonic() - start_time) * 1000)
        return receipt
