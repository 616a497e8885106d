"""
Shell command adapter — run an opaque external command as a step.

Platform CLI calls (``db init``, ``users create``, pip installs) go
through here. Only the exit code matters; output is kept for the
receipt but never parsed.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from pydantic import SecretStr

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Receipt
from provisioner.core.services.subprocess_runner import CommandRunner, run_command

logger = logging.getLogger(__name__)


def _env(context: ExecutionContext) -> dict[str, str] | None:
    """Step environment with secrets revealed for the child process only."""
    env = context.params.get("env") or {}
    if not env:
        return None
    return {
        key: value.get_secret_value() if isinstance(value, SecretStr) else str(value)
        for key, value in env.items()
    }


class ShellCommandAdapter(Adapter):
    """Execute commands and capture their outcome.

    Step params:
        command (str | list[str]): The command to execute.
        shell (bool): Run through ``/bin/sh -c`` (default: True for strings).
        as_user (str): Account to run as.
        needs_root (bool): Requires root privileges (default: False).
        env (dict[str, str]): Extra environment variables.
        cwd (str): Working directory.
        creates (str): Predicate — satisfied when this path exists.
        unless (str): Predicate — satisfied when this shell command exits 0.
    """

    def __init__(self, runner: CommandRunner | None = None):
        self._run = runner or run_command

    @property
    def name(self) -> str:
        return "command"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        command = context.params.get("command")
        if not command:
            return False, "Missing required param: 'command'"

        env = context.params.get("env") or {}
        if not isinstance(env, dict):
            return False, "Param 'env' must be a mapping"

        cwd = context.params.get("cwd")
        if cwd and not context.dry_run and not Path(cwd).is_dir():
            return False, f"Working directory does not exist: {cwd}"

        return True, ""

    def check(self, context: ExecutionContext) -> tuple[bool, str]:
        creates = context.params.get("creates")
        if creates and Path(creates).exists():
            return True, f"{creates} exists"

        unless = context.params.get("unless")
        if unless:
            result = self._run(
                unless,
                shell=True,
                as_user=context.params.get("as_user"),
                needs_root=context.params.get("needs_root", False),
                env_overrides=_env(context),
                timeout=min(context.timeout, 120),
            )
            if result["ok"]:
                return True, f"check passed: {unless}"

        return False, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        command = context.params["command"]
        use_shell = context.params.get("shell", isinstance(command, str))
        display = command if isinstance(command, str) else " ".join(command)

        logger.debug("Executing step %s: %s", context.step.id, display)
        result = self._run(
            command,
            shell=use_shell,
            as_user=context.params.get("as_user"),
            needs_root=context.params.get("needs_root", False),
            env_overrides=_env(context),
            cwd=context.params.get("cwd"),
            timeout=context.timeout,
        )

        metadata = {"command": display, "return_code": result.get("returncode")}
        if result["ok"]:
            return Receipt.applied(
                adapter=self.name,
                step_id=context.step.id,
                output=result.get("stdout", "").strip(),
                metadata=metadata,
            )

        stderr = (result.get("stderr") or "").strip()
        return Receipt.failure(
            adapter=self.name,
            step_id=context.step.id,
            error=stderr or result.get("error", "Command failed"),
            metadata={**metadata, "stdout": result.get("stdout", "")},
        )
