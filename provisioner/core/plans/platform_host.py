"""
Platform host plan — single-node orchestration platform on a small VM.

Builds the static plan for the one host role this tool ships:
OS packages → service account → environment → platform install →
database init → admin bootstrap, then the platform config file, then
the webserver and scheduler daemons, then log rotation and a sample
workflow.
"""

from __future__ import annotations

import shlex
from typing import Any

from provisioner.core.models.action import Step
from provisioner.core.models.plan import ConfigTarget, LogRotateRule, ProvisioningPlan
from provisioner.core.models.service import RestartPolicy, ServiceUnitSpec
from provisioner.core.models.settings import HostSettings
from provisioner.core.plans.sample_workflow import SAMPLE_WORKFLOW, SAMPLE_WORKFLOW_FILE
from provisioner.core.services.credentials import Credentials
from provisioner.core.services.logrotate import render_logrotate

PLATFORM_CONFIG_FILE = "airflow.cfg"
DATABASE_FILE = "airflow.db"
PLATFORM_DIRS = ("dags", "logs", "plugins")
LOGROTATE_NAME = "airflow"
WEBSERVER_UNIT = "airflow-webserver"
SCHEDULER_UNIT = "airflow-scheduler"
UNIT_NAMES = (WEBSERVER_UNIT, SCHEDULER_UNIT)


def default_platform_config(settings: HostSettings, credentials: Credentials) -> dict[str, dict[str, Any]]:
    """Platform config defaults tuned for a 1 GB, single-node host."""
    home = settings.platform.home
    return {
        "core": {
            "sql_alchemy_conn": f"sqlite:///{home}/{DATABASE_FILE}",
            "executor": "SequentialExecutor",
            "parallelism": 1,
            "max_active_tasks_per_dag": 1,
            "max_active_runs_per_dag": 1,
            "dags_folder": f"{home}/dags",
            "load_examples": False,
            "store_serialized_dags": True,
            "max_log_files_retention_count": 5,
        },
        "scheduler": {
            "dag_dir_list_interval": 300,
            "job_heartbeat_sec": 30,
            "scheduler_heartbeat_sec": 30,
            "num_runs": 1,
        },
        "webserver": {
            "web_server_host": "0.0.0.0",
            "web_server_port": settings.platform.port,
            "secret_key": credentials.secret_key,
            "expose_config": True,
            "authenticate": False,
            "rbac": True,
            "workers": 1,
            "worker_refresh_batch_size": 1,
        },
        # Unused by SequentialExecutor; kept so switching executors is an override.
        "celery": {
            "broker_url": "",
            "result_backend": "",
        },
        "logging": {
            "logging_level": "WARNING",
            "fab_logging_level": "WARNING",
        },
        "api": {
            "auth_backends": "airflow.api.auth.backend.basic_auth",
        },
    }


def _platform_env(settings: HostSettings) -> dict[str, str]:
    return {"AIRFLOW_HOME": settings.platform.home}


def _steps(settings: HostSettings, credentials: Credentials) -> list[Step]:
    account = settings.account
    platform = settings.platform
    pip = f"{platform.bin_dir}/pip"
    python = f"{platform.bin_dir}/python"
    airflow = f"{platform.bin_dir}/airflow"
    timeout = settings.step_timeout

    steps = [
        Step(
            id="packages",
            name="Install OS packages",
            adapter="package",
            params={
                "packages": list(settings.packages),
                "manager": settings.package_manager,
                "upgrade": settings.upgrade_packages,
            },
            timeout=timeout,
        ),
        Step(
            id="service-account",
            name=f"Ensure service account {account.name}",
            adapter="user",
            params={
                "username": account.name,
                "home": account.home,
                "shell": account.shell,
                "groups": list(account.groups),
            },
        ),
    ]

    # ── Environment ──────────────────────────────────────────────
    for step_id, path in [
        ("platform-home", platform.home),
        *[(f"{d}-dir", f"{platform.home}/{d}") for d in PLATFORM_DIRS],
    ]:
        steps.append(
            Step(
                id=step_id,
                name=f"Ensure directory {path}",
                adapter="filesystem",
                params={
                    "operation": "mkdir",
                    "path": path,
                    "owner": account.name,
                    "group": account.name,
                    "mode": "0755",
                },
            )
        )

    steps.append(
        Step(
            id="virtualenv",
            name="Create platform virtualenv",
            adapter="command",
            params={
                "command": [platform.python_bin, "-m", "venv", "--upgrade-deps", platform.venv],
                "as_user": account.name,
                "cwd": account.home,
                "creates": python,
            },
            timeout=timeout,
        )
    )

    # ── Platform ─────────────────────────────────────────────────
    version_check = (
        f"{shlex.quote(python)} -c "
        + shlex.quote(
            "import importlib.metadata as m, sys; "
            f"sys.exit(m.version('apache-airflow') != '{platform.version}')"
        )
    )
    steps.append(
        Step(
            id="platform-install",
            name=f"Install platform {platform.version}",
            adapter="command",
            params={
                "command": [
                    pip, "install",
                    f"apache-airflow=={platform.version}",
                    "--constraint", platform.resolved_constraints_url,
                ],
                "as_user": account.name,
                "cwd": account.home,
                "unless": version_check,
            },
            timeout=timeout,
        )
    )

    if platform.extra_packages:
        installed_check = " && ".join(
            f"{shlex.quote(pip)} show -q {shlex.quote(p)} >/dev/null 2>&1"
            for p in platform.extra_packages
        )
        steps.append(
            Step(
                id="platform-extras",
                name="Install platform providers",
                adapter="command",
                params={
                    "command": [pip, "install", *platform.extra_packages],
                    "as_user": account.name,
                    "cwd": account.home,
                    "unless": installed_check,
                },
                timeout=timeout,
            )
        )

    steps.append(
        Step(
            id="db-init",
            name="Initialize platform database",
            adapter="command",
            params={
                "command": [airflow, "db", "init"],
                "as_user": account.name,
                "cwd": platform.home,
                "env": _platform_env(settings),
                "creates": f"{platform.home}/{DATABASE_FILE}",
            },
            timeout=timeout,
        )
    )

    admin = settings.admin
    create_admin = " ".join([
        shlex.quote(airflow), "users", "create",
        "--username", shlex.quote(admin.username),
        "--password", '"$AIRFLOW_ADMIN_PASSWORD"',
        "--firstname", shlex.quote(admin.firstname),
        "--lastname", shlex.quote(admin.lastname),
        "--role", shlex.quote(admin.role),
        "--email", shlex.quote(admin.email),
    ])
    steps.append(
        Step(
            id="admin-user",
            name=f"Bootstrap admin user {admin.username}",
            adapter="command",
            params={
                "command": create_admin,
                "as_user": account.name,
                "cwd": platform.home,
                "env": {
                    **_platform_env(settings),
                    "AIRFLOW_ADMIN_PASSWORD": credentials.admin_password,
                },
                "unless": (
                    f"{shlex.quote(airflow)} users list -o plain 2>/dev/null"
                    f" | grep -qw -- {shlex.quote(admin.username)}"
                ),
            },
            timeout=timeout,
        )
    )
    return steps


def _units(settings: HostSettings) -> list[ServiceUnitSpec]:
    account = settings.account
    platform = settings.platform
    airflow = f"{platform.bin_dir}/airflow"
    environment = {
        **_platform_env(settings),
        "PATH": f"{platform.bin_dir}:/usr/local/bin:/usr/bin:/bin",
    }
    common: dict[str, Any] = {
        "executable": airflow,
        "user": account.name,
        "group": account.name,
        "environment": environment,
        "restart": RestartPolicy.ALWAYS,
        "restart_delay": 10,
    }
    return [
        ServiceUnitSpec(
            name=WEBSERVER_UNIT,
            description="Airflow webserver daemon",
            args=["webserver", "--port", str(platform.port)],
            **common,
        ),
        ServiceUnitSpec(
            name=SCHEDULER_UNIT,
            description="Airflow scheduler daemon",
            args=["scheduler"],
            **common,
        ),
    ]


def _finalize_steps(settings: HostSettings) -> list[Step]:
    account = settings.account
    platform = settings.platform
    rule = LogRotateRule(
        name=LOGROTATE_NAME,
        path_glob=f"{platform.home}/logs/*.log",
        period=settings.log_rotation.period,
        rotate=settings.log_rotation.rotate,
        compress=settings.log_rotation.compress,
    )
    steps = [
        Step(
            id="logrotate",
            name="Install log rotation rule",
            adapter="filesystem",
            params={
                "operation": "write",
                "path": f"{settings.logrotate_dir}/{rule.name}",
                "content": render_logrotate(rule),
                "mode": "0644",
            },
        )
    ]
    if platform.sample_workflow:
        steps.append(
            Step(
                id="sample-workflow",
                name="Seed sample workflow",
                adapter="filesystem",
                params={
                    "operation": "write",
                    "path": f"{platform.home}/dags/{SAMPLE_WORKFLOW_FILE}",
                    "content": SAMPLE_WORKFLOW,
                    "owner": account.name,
                    "group": account.name,
                    "mode": "0644",
                },
            )
        )
    return steps


def _notices(settings: HostSettings, credentials: Credentials) -> list[str]:
    platform = settings.platform
    return [
        f"Open inbound TCP port {platform.port} in the host firewall / security group "
        "to reach the web UI; the provisioner does not open it.",
        f"Web UI: http://<host>:{platform.port}  login: {settings.admin.username}"
        f" (password in {credentials.path or '$PROVISIONER_ADMIN_PASSWORD'})",
        f"Workflows folder: {platform.home}/dags  logs: {platform.home}/logs",
        "Low-memory host: watch memory with 'free -m' and consider a larger instance.",
    ]


def build(settings: HostSettings, credentials: Credentials) -> ProvisioningPlan:
    """Assemble the plan for a single-node orchestration platform host."""
    account = settings.account
    return ProvisioningPlan(
        name=settings.role,
        steps=_steps(settings, credentials),
        config=ConfigTarget(
            path=f"{settings.platform.home}/{PLATFORM_CONFIG_FILE}",
            defaults=default_platform_config(settings, credentials),
            overrides=settings.config_overrides,
            owner=account.name,
            group=account.name,
            mode="0640",
        ),
        units=_units(settings),
        finalize_steps=_finalize_steps(settings),
        notices=_notices(settings, credentials),
    )
