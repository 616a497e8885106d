"""
Mock adapter — universal test double for step capabilities.

Simulates a capability without touching the host. Configurable per
step ID: already satisfied, failing, or with a custom receipt. Steps it
applies become satisfied, so a second run converges like a real host.
"""

from __future__ import annotations

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Receipt


class MockAdapter(Adapter):
    """Universal mock adapter for testing.

    By default, every step is unsatisfied and applies successfully.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] applied",
        converge: bool = True,
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._converge = converge
        self._responses: dict[str, Receipt] = {}
        self._satisfied: set[str] = set()
        self._call_log: list[ExecutionContext] = []
        self._check_log: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has executed."""
        return self._call_log

    @property
    def call_count(self) -> int:
        """Number of times execute has been called."""
        return len(self._call_log)

    @property
    def executed_ids(self) -> list[str]:
        return [ctx.step.id for ctx in self._call_log]

    @property
    def checked_ids(self) -> list[str]:
        return list(self._check_log)

    def is_available(self) -> bool:
        return self._available

    def set_response(self, step_id: str, receipt: Receipt) -> None:
        """Set a custom response for a specific step ID."""
        self._responses[step_id] = receipt

    def set_failure(self, step_id: str, error: str = "Mock failure", **kwargs) -> None:
        """Configure a specific step to fail."""
        self._responses[step_id] = Receipt.failure(
            adapter=self._name,
            step_id=step_id,
            error=error,
            **kwargs,
        )

    def set_satisfied(self, step_id: str) -> None:
        """Make a step's predicate hold."""
        self._satisfied.add(step_id)

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def check(self, context: ExecutionContext) -> tuple[bool, str]:
        self._check_log.append(context.step.id)
        if context.step.id in self._satisfied:
            return True, "[mock] satisfied"
        return False, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)

        if context.step.id in self._responses:
            return self._responses[context.step.id]

        if self._converge:
            self._satisfied.add(context.step.id)
        return Receipt.applied(
            adapter=self._name,
            step_id=context.step.id,
            output=self._default_output,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        """Clear call log, custom responses and satisfied steps."""
        self._call_log.clear()
        self._check_log.clear()
        self._responses.clear()
        self._satisfied.clear()
