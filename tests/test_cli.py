"""
Tests for CLI commands — plan, apply, render-config, status, config check.
"""

import json
import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

from provisioner.adapters.mock import MockAdapter
from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.services.units import ServiceUnitManager
from provisioner.core.use_cases import provision as provision_module
from provisioner.main import cli


@pytest.fixture
def host_yml(tmp_path: Path) -> Path:
    """host.yml with every host path under tmp_path."""
    venv = tmp_path / "venv"
    (venv / "bin").mkdir(parents=True)
    exe = venv / "bin" / "airflow"
    exe.write_text("#!/bin/sh\n")
    exe.chmod(0o755)

    content = textwrap.dedent(f"""\
        role: cli-test-host
        platform:
          home: {tmp_path}/home/airflow
          venv: {venv}
        config_overrides:
          core:
            parallelism: 3
        unit_dir: {tmp_path}/units
        logrotate_dir: {tmp_path}/logrotate.d
        state_dir: {tmp_path}/state
        settle_seconds: 0
    """)
    path = tmp_path / "host.yml"
    path.write_text(content)
    return path


@pytest.fixture
def mocked_provision(monkeypatch, fake_systemctl):
    """Route ``apply`` through mock adapters and a fake systemctl."""
    real = provision_module.provision
    registry = AdapterRegistry()
    mocks = {}
    for name in ("package", "user", "filesystem", "command"):
        mocks[name] = MockAdapter(adapter_name=name)
        registry.register(mocks[name])

    def fake(config_path=None, dry_run=False, **kwargs):
        from provisioner.core.config.loader import load_settings

        settings = load_settings(config_path)
        units = ServiceUnitManager(unit_dir=settings.unit_dir, runner=fake_systemctl, settle_seconds=0)
        return real(settings=settings, dry_run=dry_run, registry=registry, units=units, environ={})

    monkeypatch.setattr(provision_module, "provision", fake)
    return mocks


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Host Provisioner" in result.output
        for command in ("plan", "apply", "render-config", "status", "config"):
            assert command in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestPlanCommand:
    def test_plan(self, host_yml: Path):
        result = CliRunner().invoke(cli, ["--config", str(host_yml), "plan"])
        assert result.exit_code == 0, result.output
        assert "cli-test-host" in result.output
        assert "db-init" in result.output
        assert "airflow-webserver.service" in result.output

    def test_plan_json(self, host_yml: Path):
        result = CliRunner().invoke(cli, ["--config", str(host_yml), "plan", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["name"] == "cli-test-host"
        assert data["steps"][0]["id"] == "packages"

    def test_plan_does_not_write_credentials(self, host_yml: Path, tmp_path: Path):
        CliRunner().invoke(cli, ["--config", str(host_yml), "plan"])
        assert not (tmp_path / "state" / "credentials.json").exists()

    @pytest.mark.parametrize("command", [["plan"], ["apply", "--dry-run"], ["render-config"]])
    def test_bad_rotation_period_is_config_error(self, tmp_path: Path, command):
        path = tmp_path / "host.yml"
        path.write_text("log_rotation:\n  period: hourly\n")
        result = CliRunner().invoke(cli, ["--config", str(path), *command])
        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "Invalid host configuration" in result.output
        assert "log_rotation.period" in result.output

    def test_plan_bad_config(self, tmp_path: Path):
        result = CliRunner().invoke(cli, ["--config", str(tmp_path / "missing.yml"), "plan"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestRenderConfigCommand:
    def test_masks_secrets(self, host_yml: Path, monkeypatch):
        monkeypatch.setenv("PROVISIONER_SECRET_KEY", "very-secret")
        result = CliRunner().invoke(cli, ["--config", str(host_yml), "render-config"])
        assert result.exit_code == 0
        assert "[core]\n" in result.output
        assert "parallelism = 3\n" in result.output
        assert "very-secret" not in result.output
        assert "secret_key = **********" in result.output

    def test_show_secrets(self, host_yml: Path, monkeypatch):
        monkeypatch.setenv("PROVISIONER_SECRET_KEY", "very-secret")
        result = CliRunner().invoke(cli, ["--config", str(host_yml), "render-config", "--show-secrets"])
        assert result.exit_code == 0
        assert "secret_key = very-secret" in result.output


class TestApplyCommand:
    def test_apply(self, host_yml: Path, mocked_provision):
        result = CliRunner().invoke(cli, ["--config", str(host_yml), "apply"])
        assert result.exit_code == 0, result.output
        assert "14 applied" in result.output
        assert "airflow-scheduler" in result.output

    def test_apply_twice_converges(self, host_yml: Path, mocked_provision):
        runner = CliRunner()
        runner.invoke(cli, ["--config", str(host_yml), "apply"])
        result = runner.invoke(cli, ["--config", str(host_yml), "apply", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["report"]["applied"] == 0
        assert data["report"]["already_satisfied"] == 14

    def test_apply_failure_exit_code(self, host_yml: Path, mocked_provision):
        mocked_provision["command"].set_failure("platform-install", error="no route to host")
        result = CliRunner().invoke(cli, ["--config", str(host_yml), "apply"])
        assert result.exit_code == 1
        assert "platform-install" in result.output
        assert "no route to host" in result.output

    def test_apply_dry_run_json(self, host_yml: Path, mocked_provision):
        result = CliRunner().invoke(cli, ["--config", str(host_yml), "apply", "--dry-run", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["dry_run"] is True
        assert {r["status"] for r in data["report"]["receipts"]} == {"planned"}


class TestStatusCommand:
    def test_status_before_any_run(self, host_yml: Path):
        result = CliRunner().invoke(cli, ["--config", str(host_yml), "status"])
        assert result.exit_code == 0
        assert "cli-test-host" in result.output
        assert "No recorded run" in result.output

    def test_status_after_apply(self, host_yml: Path, mocked_provision):
        runner = CliRunner()
        runner.invoke(cli, ["--config", str(host_yml), "apply"])
        result = runner.invoke(cli, ["--config", str(host_yml), "status", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["role"] == "cli-test-host"
        assert data["last_run"]["state"] == "completed"
        assert set(data["units"]) == {"airflow-webserver", "airflow-scheduler"}
        assert [r["operation_type"] for r in data["recent_runs"]] == ["provision"]

    def test_status_bad_config(self, tmp_path: Path):
        result = CliRunner().invoke(cli, ["--config", str(tmp_path / "nope.yml"), "status"])
        assert result.exit_code == 1


class TestConfigCheckCommand:
    def test_valid(self, host_yml: Path):
        result = CliRunner().invoke(cli, ["--config", str(host_yml), "config", "check"])
        assert result.exit_code == 0
        assert "valid" in result.output

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "host.yml"
        path.write_text("package_manager: pacman\n")
        result = CliRunner().invoke(cli, ["--config", str(path), "config", "check", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["valid"] is False
        assert data["errors"]
