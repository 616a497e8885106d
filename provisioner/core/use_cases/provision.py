"""
Provision use case — execute a plan against this host.

This is the top-level orchestrator: it loads settings, resolves
credentials, builds the plan, runs steps, renders the platform config,
brings the service units up, and persists the outcome. The full vertical
slice from ``provisioner apply`` to an audited, converged host.

Provisioning is not transactional. The first fatal error stops the run
and leaves the host partially configured; the next run converges
because every step re-checks its predicate.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.config.loader import ConfigError, load_settings
from provisioner.core.engine.runner import (
    RunReport,
    check_unique_ids,
    generate_operation_id,
    run_steps,
)
from provisioner.core.errors import ProvisionError, StepFailure
from provisioner.core.models.action import Step
from provisioner.core.models.plan import ConfigTarget, PlanState, ProvisioningPlan
from provisioner.core.models.service import ServiceUnitSpec, UnitStatus
from provisioner.core.models.settings import HostSettings
from provisioner.core.observability.logging_config import mask_secrets
from provisioner.core.persistence.audit import AuditEntry, AuditWriter
from provisioner.core.persistence.state_file import default_state_path, load_state, save_state
from provisioner.core.plans.platform_host import build
from provisioner.core.services.config_render import render, serialize
from provisioner.core.services.credentials import load_credentials
from provisioner.core.services.units import ServiceUnitManager

logger = logging.getLogger(__name__)

CONFIG_STEP_ID = "platform-config"


@dataclass
class ProvisionResult:
    """Result of one provisioning invocation."""

    report: RunReport | None = None
    plan: ProvisioningPlan | None = None
    settings: HostSettings | None = None
    dry_run: bool = False
    error: str | None = None
    failed_step: str | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        result: dict[str, Any] = {}
        if self.error:
            result["error"] = self.error
            if self.failed_step:
                result["failed_step"] = self.failed_step
        if self.plan:
            result["plan"] = self.plan.name
            result["state"] = self.plan.state.value
            result["notices"] = list(self.plan.notices)
        result["dry_run"] = self.dry_run
        result["duration_ms"] = self.duration_ms
        if self.report:
            result["report"] = self.report.to_dict()
        return result


# ── Building blocks ─────────────────────────────────────────────


def config_step(target: ConfigTarget) -> Step:
    """Render the platform config into a file-write step.

    Raises:
        RenderError: If a value cannot be serialized.
    """
    content = serialize(render(target.defaults, target.overrides))
    return Step(
        id=CONFIG_STEP_ID,
        name=f"Render {target.path}",
        adapter="filesystem",
        params={
            "operation": "write",
            "path": target.path,
            "content": content,
            "owner": target.owner,
            "group": target.group,
            "mode": target.mode,
        },
    )


def activate_units(
    specs: list[ServiceUnitSpec],
    manager: ServiceUnitManager,
    restart_all: bool = False,
) -> dict[str, dict[str, Any]]:
    """Register, reload, enable and start every unit, in that order.

    Units that were already running are restarted when their own
    definition changed, or when ``restart_all`` is set (the platform
    config they read at startup changed).
    """
    changed = {spec.name for spec in specs if manager.register(spec)}
    if manager.pending_reload:
        manager.reload()

    for spec in specs:
        manager.enable(spec.name)

    outcome: dict[str, dict[str, Any]] = {}
    for spec in specs:
        was_active = manager.status(spec.name) == UnitStatus.ACTIVE
        if was_active and (restart_all or spec.name in changed):
            manager.restart(spec.name)
            action = "restarted"
        elif was_active:
            action = "already-active"
        else:
            manager.start(spec.name)
            action = "started"
        outcome[spec.name] = {
            "changed": spec.name in changed,
            "action": action,
            "status": manager.status(spec.name).value,
        }
    return outcome


def execute(
    plan: ProvisioningPlan,
    registry: AdapterRegistry,
    units: ServiceUnitManager,
    dry_run: bool = False,
    report: RunReport | None = None,
) -> RunReport:
    """Run a plan once: steps → config → units → finalize steps.

    Args:
        plan: A plan in the NotStarted state.
        registry: Adapter registry for step dispatch.
        units: Service unit manager. Untouched in dry-run.
        dry_run: Evaluate predicates only.
        report: Optional report to record into.

    Raises:
        ProvisionError: On the first fatal error, or if the plan has
            already been executed. No rollback is attempted.
    """
    if plan.state != PlanState.NOT_STARTED:
        raise ProvisionError(f"Plan '{plan.name}' was already executed (state: {plan.state.value})")
    if report is None:
        report = RunReport(operation_id=generate_operation_id())

    plan.state = PlanState.RUNNING
    logger.info("Provisioning plan '%s' (%s)", plan.name, report.operation_id)
    try:
        cfg_step = config_step(plan.config) if plan.config else None
        check_unique_ids(plan.all_steps + ([cfg_step] if cfg_step else []))

        run_steps(plan.steps, registry, dry_run=dry_run, report=report)

        config_changed = False
        if cfg_step is not None:
            run_steps([cfg_step], registry, dry_run=dry_run, report=report)
            config_changed = report.receipts[-1].status == "applied"

        if plan.units and not dry_run:
            report.units = activate_units(plan.units, units, restart_all=config_changed)

        run_steps(plan.finalize_steps, registry, dry_run=dry_run, report=report)
    except Exception:
        plan.state = PlanState.FAILED
        raise

    plan.state = PlanState.COMPLETED
    logger.info("Plan '%s' completed: %d applied, %d already satisfied",
                plan.name, report.applied, report.satisfied)
    return report


# ── Wiring ──────────────────────────────────────────────────────


def default_registry(settings: HostSettings) -> AdapterRegistry:
    from provisioner.adapters.host.packages import PackageAdapter
    from provisioner.adapters.host.users import UserAdapter
    from provisioner.adapters.shell.command import ShellCommandAdapter
    from provisioner.adapters.shell.filesystem import FilesystemAdapter

    registry = AdapterRegistry()
    registry.register(PackageAdapter(manager=settings.package_manager))
    registry.register(UserAdapter())
    registry.register(FilesystemAdapter())
    registry.register(ShellCommandAdapter())
    return registry


def default_unit_manager(settings: HostSettings) -> ServiceUnitManager:
    return ServiceUnitManager(
        unit_dir=settings.unit_dir,
        settle_seconds=settings.settle_seconds,
    )


def _persist(result: ProvisionResult, state_dir: Path) -> None:
    report = result.report
    plan = result.plan
    if report is None or plan is None:
        return

    entry = AuditEntry(
        operation_id=report.operation_id,
        operation_type="dry-run" if result.dry_run else "provision",
        plan=plan.name,
        steps={r.step_id: r.status for r in report.receipts},
        units={name: info.get("status", "") for name, info in report.units.items()},
        status=plan.state.value,
        steps_total=report.total,
        steps_applied=report.applied,
        steps_satisfied=report.satisfied,
        failed_step=result.failed_step,
        duration_ms=result.duration_ms,
        errors=[result.error] if result.error else [],
    )

    try:
        AuditWriter(state_dir=state_dir).write(entry)
        if result.dry_run:
            return

        state_path = default_state_path(state_dir)
        state = load_state(state_path)
        state.role = plan.name
        for receipt in report.receipts:
            state.set_step_state(
                receipt.step_id,
                status=receipt.status,
                last_run_at=receipt.ended_at,
                error=receipt.error,
            )
        for name, info in report.units.items():
            state.set_unit_state(
                name,
                registered=True,
                enabled=True,
                status=info.get("status", "unknown"),
                last_checked_at=entry.timestamp,
            )
        record = state.last_run
        record.operation_id = report.operation_id
        record.plan = plan.name
        record.started_at = report.receipts[0].started_at if report.receipts else entry.timestamp
        record.ended_at = entry.timestamp
        record.state = plan.state.value
        record.dry_run = result.dry_run
        record.steps_total = report.total
        record.steps_applied = report.applied
        record.steps_satisfied = report.satisfied
        record.failed_step = result.failed_step
        record.error = result.error
        save_state(state, state_path)
    except OSError as e:
        logger.warning("Could not persist run state to %s: %s", state_dir, e)


def provision(
    config_path: Path | None = None,
    dry_run: bool = False,
    settings: HostSettings | None = None,
    registry: AdapterRegistry | None = None,
    units: ServiceUnitManager | None = None,
    environ: Mapping[str, str] | None = None,
) -> ProvisionResult:
    """Provision this host from ``host.yml`` (or built-in defaults).

    Args:
        config_path: Optional explicit path to host.yml.
        dry_run: Check predicates and report, change nothing.
        settings: Pre-loaded settings (skips the file lookup).
        registry: Optional pre-configured adapter registry.
        units: Optional pre-configured unit manager.
        environ: Environment for credential overrides (default: os.environ).

    Returns:
        ProvisionResult. ``error`` is set when the run failed.
    """
    result = ProvisionResult(dry_run=dry_run)
    start = time.monotonic()

    try:
        if settings is None:
            settings = load_settings(config_path)
    except ConfigError as e:
        result.error = str(e)
        return result
    result.settings = settings

    state_dir = Path(settings.state_dir)
    try:
        credentials = load_credentials(state_dir, environ=environ, persist=not dry_run)
    except OSError as e:
        result.error = f"Cannot save credentials in {state_dir}: {e}"
        return result
    mask_secrets(
        [credentials.admin_password.get_secret_value(), credentials.secret_key.get_secret_value()]
    )

    try:
        plan = build(settings, credentials)
    except (ProvisionError, ValueError) as e:
        result.error = f"Cannot build plan: {e}"
        return result
    result.plan = plan

    registry = registry or default_registry(settings)
    units = units or default_unit_manager(settings)
    report = RunReport(operation_id=generate_operation_id())
    result.report = report

    try:
        execute(plan, registry, units, dry_run=dry_run, report=report)
    except StepFailure as e:
        result.error = str(e)
        result.failed_step = e.step_id
    except ProvisionError as e:
        result.error = str(e)

    result.duration_ms = int((time.monotonic() - start) * 1000)
    _persist(result, state_dir)
    return result
