"""
Host settings — the static definition a plan is built from.

Every default mirrors a single-node platform host on a 1 GB VM
(SQLite, SequentialExecutor, one web worker). ``host.yml`` only needs
to state what differs.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_PACKAGES = [
    "python3.11",
    "python3.11-venv",
    "python3.11-dev",
    "python3-pip",
    "build-essential",
    "libssl-dev",
    "libffi-dev",
    "postgresql-client",
]

DEFAULT_EXTRA_PACKAGES = [
    "apache-airflow-providers-amazon",
    "apache-airflow-providers-http",
    "requests",
    "boto3",
]


class ServiceAccount(BaseModel):
    """Account the platform daemons run as."""

    name: str = "airflow"
    home: str = "/home/airflow"
    shell: str = "/bin/bash"
    groups: list[str] = Field(default_factory=lambda: ["sudo"])


class AdminAccount(BaseModel):
    """The platform's bootstrap admin user. The password is a credential, not a setting."""

    username: str = "admin"
    firstname: str = "Admin"
    lastname: str = "User"
    role: str = "Admin"
    email: str = "admin@example.com"


class PlatformSettings(BaseModel):
    version: str = "2.8.1"
    python: str = "3.11"
    home: str = "/home/airflow/airflow"
    venv: str = "/home/airflow/airflow-venv"
    port: int = Field(default=8080, ge=1, le=65535)
    extra_packages: list[str] = Field(default_factory=lambda: list(DEFAULT_EXTRA_PACKAGES))
    constraints_url: str = (
        "https://raw.githubusercontent.com/apache/airflow/"
        "constraints-{version}/constraints-{python}.txt"
    )
    sample_workflow: bool = True

    @property
    def python_bin(self) -> str:
        return f"python{self.python}"

    @property
    def bin_dir(self) -> str:
        return f"{self.venv}/bin"

    @property
    def resolved_constraints_url(self) -> str:
        return self.constraints_url.format(version=self.version, python=self.python)


class LogRotationSettings(BaseModel):
    period: Literal["daily", "weekly", "monthly", "yearly"] = "daily"
    rotate: int = Field(default=7, ge=0)
    compress: bool = True


class HostSettings(BaseModel):
    """Root settings model — what ``host.yml`` validates into."""

    role: str = "orchestration-platform-host"

    # ── OS ───────────────────────────────────────────────────────
    package_manager: str = "apt"
    packages: list[str] = Field(default_factory=lambda: list(DEFAULT_PACKAGES))
    upgrade_packages: bool = False

    # ── Accounts ─────────────────────────────────────────────────
    account: ServiceAccount = Field(default_factory=ServiceAccount)
    admin: AdminAccount = Field(default_factory=AdminAccount)

    # ── Platform ─────────────────────────────────────────────────
    platform: PlatformSettings = Field(default_factory=PlatformSettings)
    config_overrides: dict[str, dict[str, Any]] = Field(default_factory=dict)

    # ── Host layout ──────────────────────────────────────────────
    unit_dir: str = "/etc/systemd/system"
    logrotate_dir: str = "/etc/logrotate.d"
    state_dir: str = "/var/lib/provisioner"
    log_rotation: LogRotationSettings = Field(default_factory=LogRotationSettings)

    # ── Execution ────────────────────────────────────────────────
    step_timeout: int = Field(default=1800, gt=0)
    settle_seconds: float = Field(default=10.0, ge=0)

    @field_validator("package_manager")
    @classmethod
    def _known_manager(cls, value: str) -> str:
        if value not in ("apt", "dnf"):
            raise ValueError(f"unsupported package manager '{value}'")
        return value
