"""
Core subprocess runner.

The SINGLE PLACE where ``subprocess.run`` is called for host
operations. Privilege switching, environment, logging and error
handling are centralised here.

Security invariants:
- Non-interactive ``sudo -n`` only; a password prompt is a failure
- Secrets travel through the environment, never in the command args
- Environment values are never logged
"""

from __future__ import annotations

import getpass
import logging
import os
import subprocess
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., dict[str, Any]]

_OUTPUT_TAIL = 4000


def _current_user() -> str:
    try:
        return getpass.getuser()
    except Exception:
        return ""


def build_command(
    cmd: list[str] | str,
    *,
    shell: bool = False,
    as_user: str | None = None,
    needs_root: bool = False,
    preserve_env: list[str] | None = None,
) -> list[str]:
    """Resolve the final argv, including any privilege prefix."""
    argv = ["/bin/sh", "-c", cmd] if shell else list(cmd)  # type: ignore[arg-type]

    if as_user and as_user != _current_user():
        prefix = ["sudo", "-n", "-u", as_user, "-H"]
    elif needs_root and os.geteuid() != 0:
        prefix = ["sudo", "-n"]
    else:
        return argv

    # sudo resets the environment; overrides must be named to survive
    if preserve_env:
        prefix.append(f"--preserve-env={','.join(sorted(preserve_env))}")
    return [*prefix, "--", *argv]


def run_command(
    cmd: list[str] | str,
    *,
    shell: bool = False,
    as_user: str | None = None,
    needs_root: bool = False,
    timeout: int = 120,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
) -> dict[str, Any]:
    """Run a host command and capture its outcome.

    Args:
        cmd: argv list, or a shell string when ``shell`` is True.
        shell: Run the string through ``/bin/sh -c``.
        as_user: Run as this account (via ``sudo -u``) unless it is us.
        needs_root: Prefix ``sudo -n`` when not already root.
        timeout: Seconds before ``TimeoutExpired``.
        env_overrides: Extra environment variables for the child.
        cwd: Working directory for the command.

    Returns:
        ``{"ok": True, "returncode": 0, "stdout": "...", ...}`` on success,
        ``{"ok": False, "error": "...", "returncode": N, ...}`` on failure.
        ``returncode`` is None when the process never completed.
    """
    argv = build_command(
        cmd,
        shell=shell,
        as_user=as_user,
        needs_root=needs_root,
        preserve_env=list(env_overrides) if env_overrides else None,
    )

    env = os.environ.copy()
    if env_overrides:
        env.update(env_overrides)

    logger.debug("Executing: %s (cwd=%s)", argv, cwd)
    start = time.monotonic()
    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            stdin=subprocess.DEVNULL,
            text=True,
            timeout=timeout,
            env=env,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired:
        return {
            "ok": False,
            "returncode": None,
            "error": f"Command timed out ({timeout}s)",
            "stdout": "",
            "stderr": "",
        }
    except OSError as e:
        return {
            "ok": False,
            "returncode": None,
            "error": f"Cannot execute {argv[0]}: {e}",
            "stdout": "",
            "stderr": "",
        }

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = result.stdout[-_OUTPUT_TAIL:] if result.stdout else ""
    stderr = result.stderr[-_OUTPUT_TAIL:] if result.stderr else ""

    if result.returncode == 0:
        return {
            "ok": True,
            "returncode": 0,
            "stdout": stdout,
            "stderr": stderr,
            "elapsed_ms": elapsed_ms,
        }

    return {
        "ok": False,
        "returncode": result.returncode,
        "error": f"Command failed (exit {result.returncode})",
        "stdout": stdout,
        "stderr": stderr,
        "elapsed_ms": elapsed_ms,
    }
