"""
Filesystem adapter — file and directory steps.

Covers both FileWrite and DirectoryEnsure. Writes are atomic
(temp file in the same directory, then rename) so a crash never
leaves a half-written config or unit file behind.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Receipt

logger = logging.getLogger(__name__)

_VALID_OPS = {"write", "mkdir"}


def _mode_matches(target: Path, mode: str | None) -> bool:
    if not mode:
        return True
    return (target.stat().st_mode & 0o7777) == int(mode, 8)


def _owner_matches(target: Path, owner: str | None, group: str | None) -> bool:
    try:
        if owner and target.owner() != owner:
            return False
        if group and target.group() != group:
            return False
    except (KeyError, NotImplementedError):
        # uid/gid with no name on this host
        return False
    return True


def write_atomic(target: Path, content: str) -> None:
    """Write text to ``target`` via temp file + rename."""
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(target)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


class FilesystemAdapter(Adapter):
    """File and directory operations with receipts.

    Step params:
        operation (str): 'write' or 'mkdir'.
        path (str): Absolute target path.
        content (str): Content to write (for 'write').
        owner (str): Owning user (optional).
        group (str): Owning group (optional).
        mode (str): Octal permission string, e.g. '0644' (optional).
    """

    @property
    def name(self) -> str:
        return "filesystem"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if not operation:
            return False, "Missing required param: 'operation'"

        if operation not in _VALID_OPS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(_VALID_OPS))}"

        path = context.params.get("path", "")
        if not path:
            return False, "Missing required param: 'path'"
        if not Path(path).is_absolute():
            return False, f"Path must be absolute: {path}"

        if operation == "write" and "content" not in context.params:
            return False, "Missing required param: 'content' for write operation"

        mode = context.params.get("mode")
        if mode:
            try:
                int(mode, 8)
            except (TypeError, ValueError):
                return False, f"Invalid octal mode: {mode!r}"

        return True, ""

    def check(self, context: ExecutionContext) -> tuple[bool, str]:
        target = Path(context.params["path"])
        owner = context.params.get("owner")
        group = context.params.get("group")
        mode = context.params.get("mode")

        if context.params["operation"] == "mkdir":
            if not target.is_dir():
                return False, ""
        else:
            if not target.is_file():
                return False, ""
            try:
                current = target.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                return False, ""
            if current != context.params["content"]:
                return False, "content differs"

        if not _owner_matches(target, owner, group) or not _mode_matches(target, mode):
            return False, "ownership or mode differs"
        return True, f"{target} up to date"

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.params["operation"]
        target = Path(context.params["path"])

        try:
            if operation == "mkdir":
                target.mkdir(parents=True, exist_ok=True)
                output = f"Directory ensured: {target}"
            else:
                content = context.params["content"]
                write_atomic(target, content)
                output = f"Written {len(content)} bytes to {target}"
            self._apply_attrs(target, context)
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                step_id=context.step.id,
                error=f"Filesystem error: {e}",
                metadata={"operation": operation, "path": str(target)},
            )

        return Receipt.applied(
            adapter=self.name,
            step_id=context.step.id,
            output=output,
            metadata={"operation": operation, "path": str(target)},
        )

    def _apply_attrs(self, target: Path, context: ExecutionContext) -> None:
        """Apply chmod/chown if specified in the step."""
        mode = context.params.get("mode")
        if mode:
            os.chmod(target, int(mode, 8))
        owner = context.params.get("owner")
        group = context.params.get("group")
        if owner or group:
            shutil.chown(target, user=owner, group=group)
