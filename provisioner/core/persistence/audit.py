"""
Audit ledger — ``<state_dir>/audit.ndjson``.

One JSON line per ``apply`` (dry runs included): which plan ran, how
each step and unit ended, and where a failed run stopped.  Lines are
only ever appended.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_FILE = "audit.ndjson"


class AuditEntry(BaseModel):
    """One provisioning run as recorded in the ledger."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""
    operation_type: str = ""       # provision, dry-run
    plan: str = ""

    steps: dict[str, str] = Field(default_factory=dict)   # step id → receipt status
    units: dict[str, str] = Field(default_factory=dict)   # unit → observed status

    status: str = ""               # completed, failed
    steps_total: int = 0
    steps_applied: int = 0
    steps_satisfied: int = 0
    failed_step: str | None = None
    duration_ms: int = 0
    errors: list[str] = Field(default_factory=list)

    context: dict[str, Any] = Field(default_factory=dict)

    def summary(self) -> str:
        """Single-line description for ``provisioner status``."""
        line = (
            f"{self.timestamp[:19]}  {self.operation_type:<9} {self.status:<9} "
            f"{self.steps_applied} applied, {self.steps_satisfied} satisfied"
        )
        if self.failed_step:
            line += f", halted at {self.failed_step}"
        return line


class AuditWriter:
    """Appends entries to, and reads them back from, the NDJSON ledger."""

    def __init__(self, path: Path | None = None, state_dir: Path | None = None):
        if path is not None:
            self._path = path
        elif state_dir is not None:
            self._path = state_dir / DEFAULT_AUDIT_FILE
        else:
            self._path = Path(DEFAULT_AUDIT_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append ``entry``. Raises OSError if the ledger cannot be written."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False)
        with self._path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
        logger.debug("Audit entry written: %s/%s", entry.operation_type, entry.operation_id)

    def read_all(self) -> list[AuditEntry]:
        """All readable entries, oldest first. Malformed lines are skipped."""
        if not self._path.is_file():
            return []

        entries: list[AuditEntry] = []
        with self._path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(AuditEntry.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValidationError) as e:
                    logger.warning("Skipping corrupt audit entry at line %d: %s", line_num, e)
        return entries

    def read_recent(self, n: int = 20, operation_type: str | None = None) -> list[AuditEntry]:
        """The last ``n`` entries, optionally only one operation type."""
        entries = self.read_all()
        if operation_type:
            entries = [e for e in entries if e.operation_type == operation_type]
        return entries[-n:] if n > 0 else []
