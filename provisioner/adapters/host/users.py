"""
User adapter — ensure a service account exists.
"""

from __future__ import annotations

import logging
import shutil

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.errors import AlreadySatisfied
from provisioner.core.models.action import Receipt
from provisioner.core.services.subprocess_runner import CommandRunner, run_command

logger = logging.getLogger(__name__)

# useradd: "username already in use"
_USERADD_EXISTS = 9


class UserAdapter(Adapter):
    """Create a local account with a home directory and login shell.

    Step params:
        username (str): Account name.
        home (str): Home directory (created if missing).
        shell (str): Login shell (default: /bin/bash).
        groups (list[str]): Supplementary groups to append.
    """

    def __init__(self, runner: CommandRunner | None = None):
        self._run = runner or run_command

    @property
    def name(self) -> str:
        return "user"

    def is_available(self) -> bool:
        return shutil.which("useradd") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if not context.params.get("username"):
            return False, "Missing required param: 'username'"
        groups = context.params.get("groups", [])
        if not isinstance(groups, list):
            return False, "Param 'groups' must be a list"
        return True, ""

    def exists(self, username: str) -> bool:
        return bool(self._run(["id", "-u", username], timeout=10)["ok"])

    def missing_groups(self, username: str, groups: list[str]) -> list[str]:
        if not groups:
            return []
        result = self._run(["id", "-nG", username], timeout=10)
        current = set(result.get("stdout", "").split()) if result["ok"] else set()
        return [g for g in groups if g not in current]

    def check(self, context: ExecutionContext) -> tuple[bool, str]:
        username = context.params["username"]
        if not self.exists(username):
            return False, f"user {username} missing"
        missing = self.missing_groups(username, context.params.get("groups", []))
        if missing:
            return False, f"not in groups: {', '.join(missing)}"
        return True, f"user {username} exists"

    def execute(self, context: ExecutionContext) -> Receipt:
        username = context.params["username"]
        changed: list[str] = []

        if not self.exists(username):
            cmd = ["useradd", "-m", "-s", context.params.get("shell", "/bin/bash")]
            if context.params.get("home"):
                cmd += ["-d", context.params["home"]]
            cmd.append(username)

            result = self._run(cmd, needs_root=True, timeout=context.timeout)
            if result["ok"]:
                changed.append(f"created {username}")
            elif result.get("returncode") != _USERADD_EXISTS:
                return self._failed(context, cmd, result)

        missing = self.missing_groups(username, context.params.get("groups", []))
        if missing:
            cmd = ["usermod", "-aG", ",".join(missing), username]
            result = self._run(cmd, needs_root=True, timeout=context.timeout)
            if not result["ok"]:
                return self._failed(context, cmd, result)
            changed.append(f"added to {', '.join(missing)}")

        if not changed:
            raise AlreadySatisfied(f"user {username} exists")

        return Receipt.applied(
            adapter=self.name,
            step_id=context.step.id,
            output="; ".join(changed),
        )

    def _failed(self, context: ExecutionContext, cmd: list[str], result: dict) -> Receipt:
        return Receipt.failure(
            adapter=self.name,
            step_id=context.step.id,
            error=(result.get("stderr") or "").strip() or result.get("error", "Command failed"),
            metadata={"command": " ".join(cmd), "return_code": result.get("returncode")},
        )
