"""
Tests for configuration loading — host.yml parsing and validation.
"""

import textwrap
from pathlib import Path

import pytest

from provisioner.core.config.loader import ConfigError, find_settings_file, load_settings
from provisioner.core.use_cases.config_check import check_config


@pytest.fixture
def valid_host_yml(tmp_path: Path) -> Path:
    """Create a valid host.yml in a temp directory."""
    content = textwrap.dedent("""\
        role: analytics-host
        package_manager: apt
        account:
          name: airflow
          groups: [sudo]
        platform:
          version: "2.8.1"
          port: 8080
          extra_packages:
            - apache-airflow-providers-http
        config_overrides:
          core:
            parallelism: 2
          smtp:
            smtp_host: localhost
        log_rotation:
          period: weekly
          rotate: 4
    """)
    path = tmp_path / "host.yml"
    path.write_text(content)
    return path


class TestLoadSettings:
    def test_load_valid(self, valid_host_yml: Path):
        settings = load_settings(valid_host_yml)
        assert settings.role == "analytics-host"
        assert settings.platform.extra_packages == ["apache-airflow-providers-http"]
        assert settings.config_overrides["core"]["parallelism"] == 2
        assert settings.log_rotation.rotate == 4

    def test_defaults_fill_gaps(self, valid_host_yml: Path):
        settings = load_settings(valid_host_yml)
        assert settings.account.home == "/home/airflow"
        assert settings.unit_dir == "/etc/systemd/system"

    def test_wrapped_under_host_key(self, tmp_path: Path):
        path = tmp_path / "host.yml"
        path.write_text("host:\n  role: wrapped\n")
        assert load_settings(path).role == "wrapped"

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "host.yml"
        path.write_text("")
        assert load_settings(path).role == "orchestration-platform-host"

    def test_no_file_uses_defaults(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        settings = load_settings()
        assert settings.platform.version == "2.8.1"

    def test_explicit_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "host.yml"
        path.write_text("role: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "host.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(path)

    def test_unknown_rotation_period(self, tmp_path: Path):
        path = tmp_path / "host.yml"
        path.write_text("log_rotation:\n  period: hourly\n")
        with pytest.raises(ConfigError, match="log_rotation.period"):
            load_settings(path)

    def test_schema_violation(self, tmp_path: Path):
        path = tmp_path / "host.yml"
        path.write_text("package_manager: pacman\n")
        with pytest.raises(ConfigError, match="Invalid host configuration"):
            load_settings(path)


class TestFindSettingsFile:
    def test_found_in_current(self, valid_host_yml: Path):
        assert find_settings_file(valid_host_yml.parent) == valid_host_yml.resolve()

    def test_found_in_parent(self, valid_host_yml: Path):
        child = valid_host_yml.parent / "a" / "b"
        child.mkdir(parents=True)
        assert find_settings_file(child) == valid_host_yml.resolve()

    def test_not_found(self, tmp_path: Path):
        empty = tmp_path / "empty"
        empty.mkdir()
        assert find_settings_file(empty) is None


class TestConfigCheck:
    def test_valid(self, valid_host_yml: Path):
        result = check_config(valid_host_yml)
        assert result.valid
        assert result.errors == []
        assert result.to_dict()["override_sections"] == ["core", "smtp"]

    def test_missing_file_error(self, tmp_path: Path):
        result = check_config(tmp_path / "missing.yml")
        assert not result.valid
        assert "not found" in result.errors[0]

    def test_unserializable_override(self, tmp_path: Path):
        path = tmp_path / "host.yml"
        path.write_text('config_overrides:\n  core:\n    executor: "a\\nb"\n')
        result = check_config(path)
        assert not result.valid
        assert any("config_overrides" in e for e in result.errors)

    def test_bad_rotation_period(self, tmp_path: Path):
        path = tmp_path / "host.yml"
        path.write_text("log_rotation:\n  period: hourly\n")
        result = check_config(path)
        assert not result.valid
        assert any("log_rotation.period" in e for e in result.errors)

    def test_relative_home(self, tmp_path: Path):
        path = tmp_path / "host.yml"
        path.write_text("platform:\n  home: airflow\n")
        assert not check_config(path).valid

    def test_privileged_port_warns(self, tmp_path: Path):
        path = tmp_path / "host.yml"
        path.write_text("platform:\n  port: 80\n")
        result = check_config(path)
        assert result.valid
        assert any("privileged" in w for w in result.warnings)

    def test_no_packages_warns(self, tmp_path: Path):
        path = tmp_path / "host.yml"
        path.write_text("packages: []\n")
        result = check_config(path)
        assert result.valid
        assert any("packages" in w for w in result.warnings)
