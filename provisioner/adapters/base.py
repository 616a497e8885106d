"""
Adapter base — the protocol contract between runner and host.

This defines the abstract interface that every step capability must
implement. The runner only talks to the host through this protocol,
never directly to package managers, user databases or the filesystem.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from provisioner.core.models.action import Receipt, Step


class ExecutionContext(BaseModel):
    """Everything an adapter needs to check or perform a step."""

    step: Step
    dry_run: bool = False
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def timeout(self) -> int:
        return self.step.timeout


class Adapter(ABC):
    """Abstract base class for all step capabilities.

    Adapters perform host side effects and return receipts.
    They NEVER raise exceptions — failures are captured in the Receipt.
    The one allowed signal is ``AlreadySatisfied``, raised from
    ``execute`` when the host turns out to be converged already.

    To create a new adapter:
        1. Subclass Adapter
        2. Implement name, is_available, validate, check, execute
        3. Register it in the AdapterRegistry
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The capability identifier (e.g., 'package', 'user', 'command')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is available.

        Should be fast and never raise.
        """

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the step's params are complete.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def check(self, context: ExecutionContext) -> tuple[bool, str]:
        """Idempotency predicate: is the step's goal state already present?

        Returns:
            (satisfied, detail). Must not change the host.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Perform the step and return a receipt.

        MUST never raise exceptions other than ``AlreadySatisfied``.
        All failures are captured in the Receipt with status='failed'.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
