"""
Tests for the service unit manager — render, register, lifecycle.
"""

import time
from pathlib import Path

import pytest

from provisioner.core.errors import ExternalCommandFailure, ProvisionError, StartFailure
from provisioner.core.models.service import RestartPolicy, ServiceUnitSpec, UnitStatus
from provisioner.core.services.units import ServiceUnitManager, render_unit


@pytest.fixture
def executable(tmp_path: Path) -> Path:
    exe = tmp_path / "bin" / "daemon"
    exe.parent.mkdir()
    exe.write_text("#!/bin/sh\n")
    exe.chmod(0o755)
    return exe


def _spec(executable: Path, **kwargs) -> ServiceUnitSpec:
    fields = {"name": "webd", "executable": str(executable), "args": ["serve"]}
    fields.update(kwargs)
    return ServiceUnitSpec(**fields)


def _manager(tmp_path: Path, runner) -> ServiceUnitManager:
    return ServiceUnitManager(unit_dir=tmp_path / "units", runner=runner, settle_seconds=0)


class TestRenderUnit:
    def test_sections(self):
        spec = ServiceUnitSpec(
            name="airflow-webserver",
            description="Airflow webserver daemon",
            executable="/opt/venv/bin/airflow",
            args=["webserver", "--port", "8080"],
            user="airflow",
            group="airflow",
            environment={"AIRFLOW_HOME": "/home/airflow/airflow"},
        )
        text = render_unit(spec)
        assert text.startswith("[Unit]\nDescription=Airflow webserver daemon\nAfter=network.target\n")
        assert "User=airflow\n" in text
        assert "Environment=AIRFLOW_HOME=/home/airflow/airflow\n" in text
        assert "ExecStart=/opt/venv/bin/airflow webserver --port 8080\n" in text
        assert "Restart=always\nRestartSec=10\n" in text
        assert text.endswith("[Install]\nWantedBy=multi-user.target\n")

    def test_quotes_whitespace(self):
        spec = ServiceUnitSpec(name="x", executable="/bin/run", args=["a b"], environment={"MSG": "hi there"})
        text = render_unit(spec)
        assert 'ExecStart=/bin/run "a b"' in text
        assert 'Environment="MSG=hi there"' in text

    def test_no_restart_delay_without_restart(self):
        spec = ServiceUnitSpec(name="x", executable="/bin/run", restart=RestartPolicy.NEVER)
        text = render_unit(spec)
        assert "Restart=no\n" in text
        assert "RestartSec" not in text


class TestRegister:
    def test_writes_unit_file(self, tmp_path, executable, fake_systemctl):
        manager = _manager(tmp_path, fake_systemctl)
        spec = _spec(executable)
        assert manager.register(spec) is True
        path = tmp_path / "units" / "webd.service"
        assert path.read_text() == render_unit(spec)
        assert (path.stat().st_mode & 0o777) == 0o644
        assert manager.pending_reload
        assert manager.is_registered("webd")
        assert manager.is_registered("webd.service")

    def test_identical_register_is_noop(self, tmp_path, executable, fake_systemctl):
        manager = _manager(tmp_path, fake_systemctl)
        spec = _spec(executable)
        manager.register(spec)
        manager.reload()
        mtime = manager.unit_path(spec).stat().st_mtime_ns

        assert manager.register(_spec(executable)) is False
        assert not manager.pending_reload
        assert manager.unit_path(spec).stat().st_mtime_ns == mtime

    def test_identical_file_from_previous_run(self, tmp_path, executable, fake_systemctl):
        spec = _spec(executable)
        _manager(tmp_path, fake_systemctl).register(spec)

        fresh = _manager(tmp_path, fake_systemctl)
        assert fresh.register(spec) is False
        assert not fresh.pending_reload
        assert fresh.is_registered("webd")

    def test_changed_spec_overwrites(self, tmp_path, executable, fake_systemctl):
        manager = _manager(tmp_path, fake_systemctl)
        manager.register(_spec(executable))
        manager.reload()
        assert manager.register(_spec(executable, args=["serve", "--fast"])) is True
        assert manager.pending_reload
        assert "--fast" in manager.unit_path(_spec(executable)).read_text()
        assert len(manager.units) == 1


class TestLifecycle:
    def test_reload_clears_pending(self, tmp_path, executable, fake_systemctl):
        manager = _manager(tmp_path, fake_systemctl)
        manager.register(_spec(executable))
        manager.reload()
        assert not manager.pending_reload
        assert fake_systemctl.reloads == 1

    def test_reload_failure(self, tmp_path, fake_runner):
        fake_runner.on("systemctl daemon-reload", ok=False, returncode=1, stderr="bus error")
        manager = _manager(tmp_path, fake_runner)
        with pytest.raises(ExternalCommandFailure) as exc_info:
            manager.reload()
        assert exc_info.value.return_code == 1

    def test_enable_idempotent(self, tmp_path, executable, fake_systemctl):
        manager = _manager(tmp_path, fake_systemctl)
        manager.register(_spec(executable))
        manager.enable("webd")
        manager.enable("webd")
        assert fake_systemctl.verbs("enable") == ["webd.service"]

    def test_enable_unregistered(self, tmp_path, fake_systemctl):
        with pytest.raises(ProvisionError):
            _manager(tmp_path, fake_systemctl).enable("ghost")

    def test_start_and_status(self, tmp_path, executable, fake_systemctl):
        manager = _manager(tmp_path, fake_systemctl)
        manager.register(_spec(executable))
        manager.reload()
        assert manager.status("webd") == UnitStatus.INACTIVE
        manager.start("webd")
        assert manager.status("webd") == UnitStatus.ACTIVE

    def test_start_already_active_is_noop(self, tmp_path, executable, fake_systemctl):
        manager = _manager(tmp_path, fake_systemctl)
        manager.register(_spec(executable))
        manager.reload()
        manager.start("webd")
        manager.start("webd")
        assert fake_systemctl.verbs("start") == ["webd.service"]

    def test_start_refused_while_reload_pending(self, tmp_path, executable, fake_systemctl):
        manager = _manager(tmp_path, fake_systemctl)
        manager.register(_spec(executable))
        with pytest.raises(StartFailure, match="reload"):
            manager.start("webd")
        assert fake_systemctl.verbs("start") == []

    def test_start_unregistered(self, tmp_path, fake_systemctl):
        with pytest.raises(StartFailure) as exc_info:
            _manager(tmp_path, fake_systemctl).start("ghost")
        assert exc_info.value.unit == "ghost"

    def test_start_missing_executable(self, tmp_path, fake_systemctl):
        manager = _manager(tmp_path, fake_systemctl)
        manager.register(_spec(tmp_path / "nope"))
        manager.reload()
        with pytest.raises(StartFailure, match="executable not found"):
            manager.start("webd")

    def test_start_non_executable(self, tmp_path, fake_systemctl):
        exe = tmp_path / "plain"
        exe.write_text("")
        exe.chmod(0o644)
        manager = _manager(tmp_path, fake_systemctl)
        manager.register(_spec(exe))
        manager.reload()
        with pytest.raises(StartFailure, match="not executable"):
            manager.start("webd")

    def test_start_bad_environment_name(self, tmp_path, executable, fake_systemctl):
        manager = _manager(tmp_path, fake_systemctl)
        manager.register(_spec(executable, environment={"1BAD": "x"}))
        manager.reload()
        with pytest.raises(StartFailure, match="environment"):
            manager.start("webd")

    def test_start_command_fails(self, tmp_path, executable, make_systemctl):
        systemctl = make_systemctl(fail_start={"webd.service"})
        manager = _manager(tmp_path, systemctl)
        manager.register(_spec(executable))
        manager.reload()
        with pytest.raises(StartFailure, match="exited 1"):
            manager.start("webd")

    def test_start_crashes_during_settle(self, tmp_path, executable, make_systemctl):
        systemctl = make_systemctl(crash={"webd.service"})
        manager = _manager(tmp_path, systemctl)
        manager.register(_spec(executable))
        manager.reload()
        with pytest.raises(StartFailure, match="failed"):
            manager.start("webd")

    def test_settle_polls_until_deadline(self, tmp_path, executable, fake_systemctl):
        sleeps: list[float] = []

        def sleep(seconds: float) -> None:
            sleeps.append(seconds)
            time.sleep(seconds)

        manager = ServiceUnitManager(
            unit_dir=tmp_path / "units",
            runner=fake_systemctl,
            settle_seconds=0.05,
            poll_interval=0.01,
            sleep=sleep,
        )
        manager.register(_spec(executable))
        manager.reload()
        manager.start("webd")
        assert sleeps
        assert manager.status("webd") == UnitStatus.ACTIVE

    def test_restart(self, tmp_path, executable, fake_systemctl):
        manager = _manager(tmp_path, fake_systemctl)
        manager.register(_spec(executable))
        manager.reload()
        manager.start("webd")
        manager.restart("webd")
        assert fake_systemctl.verbs("restart") == ["webd.service"]

    def test_status_unknown_unit(self, tmp_path, fake_runner):
        fake_runner.on("systemctl is-active", ok=False, returncode=4, stdout="")
        assert _manager(tmp_path, fake_runner).status("ghost") == UnitStatus.UNKNOWN

    def test_status_never_raises(self, tmp_path):
        def exploding(cmd, **kwargs):
            raise OSError("no systemctl")

        assert _manager(tmp_path, exploding).status("webd") == UnitStatus.UNKNOWN
