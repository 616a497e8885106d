"""
Error taxonomy — everything that can stop a provisioning run.

All of these are fatal to the current run: there is no local recovery,
no automatic retry and no rollback. The one exception is
``AlreadySatisfied``, which is a signal rather than an error: an adapter
raises it when it discovers mid-action that the host already converged,
and the registry turns it into an ``already-satisfied`` receipt.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from provisioner.core.engine.runner import RunReport


class ProvisionError(Exception):
    """Base class for every provisioning failure."""


class AlreadySatisfied(Exception):
    """No-op signal: the step's goal state already holds."""

    def __init__(self, reason: str = ""):
        super().__init__(reason or "already satisfied")
        self.reason = reason


class StepFailure(ProvisionError):
    """A step's action failed; the run halted at this step."""

    def __init__(self, step_id: str, cause: str, report: RunReport | None = None):
        super().__init__(f"Step '{step_id}' failed: {cause}")
        self.step_id = step_id
        self.cause = cause
        self.report = report


class ExternalCommandFailure(ProvisionError):
    """A delegated process exited with a nonzero status."""

    def __init__(
        self,
        command: str | list[str],
        return_code: int | None,
        stderr: str = "",
    ):
        if isinstance(command, list):
            command = " ".join(command)
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(f"'{command}' exited with code {return_code}{detail}")
        self.command = command
        self.return_code = return_code
        self.stderr = stderr

    @classmethod
    def from_result(cls, command: str | list[str], result: dict[str, Any]) -> ExternalCommandFailure:
        """Build from a ``run_command`` result dict."""
        return cls(
            command,
            result.get("returncode"),
            result.get("stderr") or result.get("error", ""),
        )


class RenderError(ProvisionError):
    """A configuration value cannot be serialized to the target format."""


class StartFailure(ProvisionError):
    """A declared service unit did not reach the Active state."""

    def __init__(self, unit: str, reason: str):
        super().__init__(f"Unit '{unit}' failed to start: {reason}")
        self.unit = unit
        self.reason = reason
