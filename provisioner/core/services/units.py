"""
Service unit manager — register, enable, start and query daemons.

Unit files are rendered from ``ServiceUnitSpec`` into the service
manager's unit directory; lifecycle calls go to ``systemctl``. Restart
policy is only declared in the unit file: enforcing it is the service
manager's job.

Registration is idempotent. An identical spec, or an identical file
already on disk from a previous run, is a no-op. A changed spec
overwrites the file and leaves a reload pending; ``start`` refuses to
run until ``reload`` has picked the new definition up.
"""

from __future__ import annotations

import logging
import os
import re
import time
from pathlib import Path
from typing import Callable

from provisioner.adapters.shell.filesystem import write_atomic
from provisioner.core.errors import ExternalCommandFailure, ProvisionError, StartFailure
from provisioner.core.models.service import ServiceUnitSpec, UnitStatus
from provisioner.core.services.subprocess_runner import CommandRunner, run_command

logger = logging.getLogger(__name__)

DEFAULT_UNIT_DIR = "/etc/systemd/system"

_ENV_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_ACTIVE_STATES = {
    "active": UnitStatus.ACTIVE,
    "inactive": UnitStatus.INACTIVE,
    "failed": UnitStatus.FAILED,
}


# ── Rendering ───────────────────────────────────────────────────


def _quote(value: str) -> str:
    """Quote a unit-file word when it contains whitespace or quotes."""
    if value and not re.search(r'[\s"\'\\]', value):
        return value
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


def render_unit(spec: ServiceUnitSpec) -> str:
    """Render a ``[Unit]`` / ``[Service]`` / ``[Install]`` unit file."""
    unit = [f"Description={spec.description or spec.name}"]
    if spec.after:
        unit.append(f"After={' '.join(spec.after)}")

    service = [f"Type={spec.service_type}"]
    if spec.user:
        service.append(f"User={spec.user}")
    if spec.group:
        service.append(f"Group={spec.group}")
    for key, value in spec.environment.items():
        service.append(f"Environment={_quote(f'{key}={value}')}")
    if spec.working_directory:
        service.append(f"WorkingDirectory={spec.working_directory}")
    exec_start = " ".join(_quote(word) for word in [spec.executable, *spec.args])
    service.append(f"ExecStart={exec_start}")
    service.append(f"Restart={spec.restart.value}")
    if spec.restart.value != "no":
        service.append(f"RestartSec={spec.restart_delay}")

    install = [f"WantedBy={spec.wanted_by}"]

    sections = [("Unit", unit), ("Service", service), ("Install", install)]
    return "\n\n".join(
        "\n".join([f"[{title}]", *lines]) for title, lines in sections
    ) + "\n"


def _key(name: str) -> str:
    return name[: -len(".service")] if name.endswith(".service") else name


# ── Manager ─────────────────────────────────────────────────────


class ServiceUnitManager:
    """Declarative front-end to the host service manager.

    Args:
        unit_dir: Directory unit files are written into.
        runner: Command runner (``run_command`` by default).
        settle_seconds: How long ``start`` watches a unit before
            judging it. The unit must be Active at the end.
        poll_interval: Seconds between status polls while settling.
        sleep: Sleep function (injectable for tests).
    """

    def __init__(
        self,
        unit_dir: Path | str = DEFAULT_UNIT_DIR,
        runner: CommandRunner | None = None,
        settle_seconds: float = 10.0,
        poll_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._unit_dir = Path(unit_dir)
        self._run = runner or run_command
        self._settle_seconds = settle_seconds
        self._poll_interval = poll_interval
        self._sleep = sleep
        self._units: dict[str, ServiceUnitSpec] = {}
        self._pending_reload = False

    @property
    def unit_dir(self) -> Path:
        return self._unit_dir

    @property
    def pending_reload(self) -> bool:
        return self._pending_reload

    @property
    def units(self) -> dict[str, ServiceUnitSpec]:
        """Registered specs, keyed by unit name (copy)."""
        return dict(self._units)

    def unit_path(self, spec: ServiceUnitSpec) -> Path:
        return self._unit_dir / spec.unit_name

    def is_registered(self, name: str) -> bool:
        return _key(name) in self._units

    def _require(self, name: str) -> ServiceUnitSpec:
        spec = self._units.get(_key(name))
        if spec is None:
            raise ProvisionError(f"Unit '{name}' is not registered")
        return spec

    def _systemctl(self, *args: str, needs_root: bool = True) -> dict:
        return self._run(["systemctl", *args], needs_root=needs_root, timeout=60)

    # ── Operations ───────────────────────────────────────────────

    def register(self, spec: ServiceUnitSpec) -> bool:
        """Write the unit file for ``spec``.

        Returns:
            True if the file changed (a reload is now pending),
            False if this exact definition was already in place.
        """
        key = _key(spec.name)
        content = render_unit(spec)
        path = self.unit_path(spec)

        if self._units.get(key) == spec and path.is_file():
            logger.debug("Unit %s already registered", spec.unit_name)
            return False

        if path.is_file() and path.read_text(encoding="utf-8") == content:
            self._units[key] = spec
            logger.debug("Unit %s already on disk", spec.unit_name)
            return False

        write_atomic(path, content)
        os.chmod(path, 0o644)
        self._units[key] = spec
        self._pending_reload = True
        logger.info("Registered unit %s → %s", spec.unit_name, path)
        return True

    def reload(self) -> None:
        """Make the service manager re-read unit files."""
        result = self._systemctl("daemon-reload")
        if not result["ok"]:
            raise ExternalCommandFailure.from_result("systemctl daemon-reload", result)
        self._pending_reload = False
        logger.info("Service manager reloaded")

    def enable(self, name: str) -> None:
        """Enable a registered unit at boot (no-op if already enabled)."""
        spec = self._require(name)
        current = self._systemctl("is-enabled", spec.unit_name, needs_root=False)
        if current.get("stdout", "").strip() == "enabled":
            logger.debug("Unit %s already enabled", spec.unit_name)
            return

        result = self._systemctl("enable", spec.unit_name)
        if not result["ok"]:
            raise ExternalCommandFailure.from_result(f"systemctl enable {spec.unit_name}", result)
        logger.info("Enabled unit %s", spec.unit_name)

    def status(self, name: str) -> UnitStatus:
        """Current activity state of a unit. Never raises."""
        unit_name = self._units[_key(name)].unit_name if self.is_registered(name) else f"{_key(name)}.service"
        try:
            result = self._systemctl("is-active", unit_name, needs_root=False)
        except Exception as e:
            logger.warning("Cannot query status of %s: %s", unit_name, e)
            return UnitStatus.UNKNOWN
        return _ACTIVE_STATES.get(result.get("stdout", "").strip(), UnitStatus.UNKNOWN)

    def start(self, name: str) -> None:
        """Start a registered unit and wait for it to settle as Active.

        Already-active units are left alone.

        Raises:
            StartFailure: Unit unknown, reload pending, executable or
                environment invalid, start command failed, or the unit
                was not Active at the end of the settle window.
        """
        try:
            spec = self._require(name)
        except ProvisionError as e:
            raise StartFailure(name, str(e)) from e

        if self._pending_reload:
            raise StartFailure(spec.name, "unit definition changed; reload() required before start")

        self._check_runtime(spec)

        if self.status(spec.name) == UnitStatus.ACTIVE:
            logger.debug("Unit %s already active", spec.unit_name)
            return

        result = self._systemctl("start", spec.unit_name)
        if not result["ok"]:
            detail = (result.get("stderr") or "").strip() or result.get("error", "")
            raise StartFailure(spec.name, f"systemctl start exited {result.get('returncode')}: {detail}")

        self._wait_active(spec)
        logger.info("Started unit %s", spec.unit_name)

    def restart(self, name: str) -> None:
        """Restart a registered unit so it picks up new configuration."""
        spec = self._require(name)
        if self._pending_reload:
            raise StartFailure(spec.name, "unit definition changed; reload() required before restart")
        self._check_runtime(spec)

        result = self._systemctl("restart", spec.unit_name)
        if not result["ok"]:
            detail = (result.get("stderr") or "").strip() or result.get("error", "")
            raise StartFailure(spec.name, f"systemctl restart exited {result.get('returncode')}: {detail}")

        self._wait_active(spec)
        logger.info("Restarted unit %s", spec.unit_name)

    # ── Internals ────────────────────────────────────────────────

    def _check_runtime(self, spec: ServiceUnitSpec) -> None:
        exe = Path(spec.executable)
        if not exe.is_file():
            raise StartFailure(spec.name, f"executable not found: {exe}")
        if not os.access(exe, os.X_OK):
            raise StartFailure(spec.name, f"executable is not executable: {exe}")

        for key, value in spec.environment.items():
            if not _ENV_NAME.match(key):
                raise StartFailure(spec.name, f"invalid environment variable name: {key!r}")
            if "\n" in value or "\r" in value or "\x00" in value:
                raise StartFailure(spec.name, f"environment variable {key} contains a line break")

        if spec.working_directory and not Path(spec.working_directory).is_dir():
            raise StartFailure(spec.name, f"working directory not found: {spec.working_directory}")

    def _wait_active(self, spec: ServiceUnitSpec) -> None:
        deadline = time.monotonic() + self._settle_seconds
        current = self.status(spec.name)
        while time.monotonic() < deadline:
            if current == UnitStatus.FAILED:
                break
            self._sleep(self._poll_interval)
            current = self.status(spec.name)

        if current != UnitStatus.ACTIVE:
            raise StartFailure(spec.name, f"unit is {current.value} after {self._settle_seconds:g}s")
