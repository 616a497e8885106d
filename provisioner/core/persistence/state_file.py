"""
Host state file — ``<state_dir>/current.json``.

Saves go through a temp file in the same directory and ``os.replace``,
so a crash mid-write leaves the previous document intact.  A file that
cannot be parsed is moved aside to ``current.json.corrupt`` and the run
continues from a fresh state; every step re-checks the host anyway.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from provisioner.core.models.state import SCHEMA_VERSION, HostState

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "current.json"


def default_state_path(state_dir: Path) -> Path:
    return state_dir / DEFAULT_STATE_FILE


def load_state(path: Path) -> HostState:
    """Read the state file, or return a fresh ``HostState``.

    Unreadable and unparsable files never abort a run.  A document
    written by a newer schema is ignored (but left in place).
    """
    if not path.is_file():
        logger.info("No state file at %s, starting fresh", path)
        return HostState()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        state = HostState.model_validate(data)
    except OSError as e:
        logger.warning("Cannot read state file %s: %s", path, e)
        return HostState()
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning("Corrupt state file %s: %s", path, e)
        _quarantine(path)
        return HostState()

    if state.schema_version > SCHEMA_VERSION:
        logger.warning(
            "State file %s has schema %d (this version reads %d), ignoring it",
            path, state.schema_version, SCHEMA_VERSION,
        )
        return HostState()

    logger.debug("Loaded state from %s (updated_at=%s)", path, state.updated_at)
    return state


def save_state(state: HostState, path: Path) -> None:
    """Write ``state`` to ``path`` atomically. Raises OSError on failure."""
    state.touch()
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(state.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".state_", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        logger.error("Failed to save state to %s", path)
        raise
    logger.debug("State saved to %s", path)


def _quarantine(path: Path) -> None:
    target = path.with_name(path.name + ".corrupt")
    try:
        os.replace(path, target)
        logger.warning("Moved unreadable state to %s", target)
    except OSError as e:
        logger.warning("Could not move %s aside: %s", path, e)
