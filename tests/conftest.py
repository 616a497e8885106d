"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from provisioner.core.models.settings import HostSettings, PlatformSettings, ServiceAccount


class FakeRunner:
    """Stands in for ``run_command``: records calls, answers by command prefix."""

    def __init__(self):
        self.calls: list[tuple[object, dict]] = []
        self._rules: list[tuple[str, dict]] = []

    def on(self, prefix: str, ok: bool = True, stdout: str = "", stderr: str = "",
           returncode: int | None = None) -> None:
        """Answer commands starting with ``prefix``. Later rules win."""
        if returncode is None:
            returncode = 0 if ok else 1
        self._rules.append((prefix, {
            "ok": ok,
            "returncode": returncode,
            "stdout": stdout,
            "stderr": stderr,
            "error": "" if ok else f"Command failed (exit {returncode})",
        }))

    @property
    def commands(self) -> list[str]:
        return [c if isinstance(c, str) else " ".join(c) for c, _ in self.calls]

    def __call__(self, cmd, **kwargs) -> dict:
        self.calls.append((cmd, kwargs))
        line = cmd if isinstance(cmd, str) else " ".join(cmd)
        for prefix, result in reversed(self._rules):
            if line.startswith(prefix):
                return dict(result)
        return {"ok": True, "returncode": 0, "stdout": "", "stderr": ""}


class FakeSystemctl:
    """Stateful ``systemctl`` double: tracks enabled and active units."""

    def __init__(self, fail_start: set[str] | None = None, crash: set[str] | None = None):
        self.calls: list[list[str]] = []
        self.enabled: set[str] = set()
        self.active: set[str] = set()
        self.reloads = 0
        self._fail_start = fail_start or set()
        self._crash = crash or set()

    @staticmethod
    def _ok(stdout: str = "") -> dict:
        return {"ok": True, "returncode": 0, "stdout": stdout, "stderr": ""}

    @staticmethod
    def _fail(code: int, stdout: str = "", stderr: str = "") -> dict:
        return {"ok": False, "returncode": code, "stdout": stdout, "stderr": stderr,
                "error": f"Command failed (exit {code})"}

    def __call__(self, cmd, **kwargs) -> dict:
        self.calls.append(list(cmd))
        verb, *rest = cmd[1:]
        unit = rest[0] if rest else ""
        if verb == "daemon-reload":
            self.reloads += 1
            return self._ok()
        if verb == "is-enabled":
            return self._ok("enabled") if unit in self.enabled else self._fail(1, "disabled")
        if verb == "enable":
            self.enabled.add(unit)
            return self._ok()
        if verb == "is-active":
            if unit in self._crash:
                return self._fail(3, "failed")
            return self._ok("active") if unit in self.active else self._fail(3, "inactive")
        if verb in ("start", "restart"):
            if unit in self._fail_start:
                return self._fail(1, stderr=f"Job for {unit} failed")
            self.active.add(unit)
            return self._ok()
        return self._fail(1, stderr=f"unknown verb {verb}")

    def verbs(self, verb: str) -> list[str]:
        return [c[2] for c in self.calls if c[1] == verb and len(c) > 2]


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for state files."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_systemctl() -> FakeSystemctl:
    return FakeSystemctl()


@pytest.fixture
def make_systemctl():
    """Factory for systemctl doubles with failing or crashing units."""
    return FakeSystemctl


@pytest.fixture
def host_settings(tmp_path: Path, tmp_state_dir: Path) -> HostSettings:
    """Settings with every host path redirected under tmp_path.

    The platform executable exists and is executable, so unit runtime
    checks pass.
    """
    home = tmp_path / "home" / "airflow"
    venv = tmp_path / "venv"
    (venv / "bin").mkdir(parents=True)
    airflow = venv / "bin" / "airflow"
    airflow.write_text("#!/bin/sh\nexit 0\n")
    airflow.chmod(0o755)

    return HostSettings(
        account=ServiceAccount(home=str(tmp_path / "home"), groups=[]),
        platform=PlatformSettings(home=str(home), venv=str(venv)),
        unit_dir=str(tmp_path / "units"),
        logrotate_dir=str(tmp_path / "logrotate.d"),
        state_dir=str(tmp_state_dir),
        settle_seconds=0,
    )
