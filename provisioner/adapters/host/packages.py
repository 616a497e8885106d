"""
Package adapter — ensure OS packages are installed.

Checks each package against the package database first and installs
only the missing ones, so a converged host never touches the network.
"""

from __future__ import annotations

import logging
import shutil

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Receipt
from provisioner.core.services.subprocess_runner import CommandRunner, run_command

logger = logging.getLogger(__name__)

# Package manager → query prefix, refresh, upgrade, install prefix
_MANAGERS: dict[str, dict[str, list[str]]] = {
    "apt": {
        "query": ["dpkg-query", "-W", "-f=${Status}"],
        "refresh": ["apt-get", "update"],
        "upgrade": ["apt-get", "upgrade", "-y"],
        "install": ["apt-get", "install", "-y", "--no-install-recommends"],
    },
    "dnf": {
        "query": ["rpm", "-q"],
        "refresh": ["dnf", "makecache"],
        "upgrade": ["dnf", "upgrade", "-y"],
        "install": ["dnf", "install", "-y"],
    },
}

_NONINTERACTIVE_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


class PackageAdapter(Adapter):
    """Ensure a set of OS packages is installed.

    Step params:
        packages (list[str]): Exact package names for the distro.
        manager (str): 'apt' (default) or 'dnf'.
        upgrade (bool): Upgrade installed packages after the index
            refresh. Only happens on a run that installs something.
    """

    def __init__(self, runner: CommandRunner | None = None, manager: str = "apt"):
        self._run = runner or run_command
        self._manager = manager

    @property
    def name(self) -> str:
        return "package"

    def is_available(self) -> bool:
        query = _MANAGERS.get(self._manager, {}).get("query")
        return bool(query) and shutil.which(query[0]) is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        packages = context.params.get("packages")
        if not packages or not isinstance(packages, list):
            return False, "Missing required param: 'packages' (non-empty list)"
        manager = context.params.get("manager", self._manager)
        if manager not in _MANAGERS:
            return False, f"Unsupported package manager '{manager}'. Valid: {', '.join(sorted(_MANAGERS))}"
        return True, ""

    def is_installed(self, package: str, manager: str | None = None) -> bool:
        """Query the package database for one package."""
        manager = manager or self._manager
        result = self._run([*_MANAGERS[manager]["query"], package], timeout=30)
        if manager == "apt":
            return "install ok installed" in result.get("stdout", "")
        return bool(result["ok"])

    def missing(self, packages: list[str], manager: str | None = None) -> list[str]:
        return [p for p in packages if not self.is_installed(p, manager)]

    def install(
        self,
        packages: list[str],
        manager: str | None = None,
        timeout: int = 1800,
        upgrade: bool = False,
    ) -> dict:
        """Refresh the package index, optionally upgrade, then install ``packages``."""
        manager = manager or self._manager
        commands = _MANAGERS[manager]

        refresh = self._run(
            commands["refresh"],
            needs_root=True,
            env_overrides=_NONINTERACTIVE_ENV,
            timeout=timeout,
        )
        if not refresh["ok"]:
            return refresh

        if upgrade:
            upgraded = self._run(
                commands["upgrade"],
                needs_root=True,
                env_overrides=_NONINTERACTIVE_ENV,
                timeout=timeout,
            )
            if not upgraded["ok"]:
                return upgraded

        return self._run(
            [*commands["install"], *packages],
            needs_root=True,
            env_overrides=_NONINTERACTIVE_ENV,
            timeout=timeout,
        )

    def check(self, context: ExecutionContext) -> tuple[bool, str]:
        manager = context.params.get("manager", self._manager)
        missing = self.missing(context.params["packages"], manager)
        if missing:
            return False, f"missing: {', '.join(missing)}"
        return True, "All packages already installed"

    def execute(self, context: ExecutionContext) -> Receipt:
        manager = context.params.get("manager", self._manager)
        missing = self.missing(context.params["packages"], manager)
        if not missing:
            return Receipt.already_satisfied(
                adapter=self.name,
                step_id=context.step.id,
                reason="All packages already installed",
            )

        logger.info("Installing %d package(s): %s", len(missing), " ".join(missing))
        result = self.install(
            missing,
            manager,
            timeout=context.timeout,
            upgrade=bool(context.params.get("upgrade", False)),
        )

        metadata = {"packages": missing, "return_code": result.get("returncode")}
        if result["ok"]:
            return Receipt.applied(
                adapter=self.name,
                step_id=context.step.id,
                output=f"Installed: {' '.join(missing)}",
                metadata=metadata,
            )
        return Receipt.failure(
            adapter=self.name,
            step_id=context.step.id,
            error=(result.get("stderr") or "").strip() or result.get("error", "Install failed"),
            metadata=metadata,
        )
