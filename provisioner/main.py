"""
Host Provisioner — CLI entrypoint.

Usage:
    python -m provisioner.main --help
    python -m provisioner.main plan
    python -m provisioner.main apply --dry-run
    python -m provisioner.main status
    python -m provisioner.main config check
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from pydantic import SecretStr

from provisioner.core.observability.logging_config import configure_from_cli

from provisioner import __version__

_STATUS_STYLE = {
    "applied": ("✓", "green"),
    "already-satisfied": ("=", "white"),
    "planned": ("~", "yellow"),
    "failed": ("✗", "red"),
}


@click.group()
@click.version_option(version=__version__, prog_name="provisioner")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to host.yml (default: auto-detect, else built-in defaults).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Host Provisioner — converge a host into a running platform node."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    configure_from_cli(verbose=verbose, quiet=quiet, debug=debug)


def _load_plan(ctx: click.Context):
    """Settings + credentials (never persisted) → plan. Exits on config errors."""
    from provisioner.core.config.loader import ConfigError, load_settings
    from provisioner.core.errors import ProvisionError
    from provisioner.core.plans.platform_host import build
    from provisioner.core.services.credentials import load_credentials

    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    credentials = load_credentials(Path(settings.state_dir), persist=False)
    try:
        return settings, build(settings, credentials)
    except (ProvisionError, ValueError) as e:
        click.secho(f"❌ Cannot build plan: {e}", fg="red")
        sys.exit(1)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(ctx: click.Context, as_json: bool) -> None:
    """Show what apply would do, in order, without touching the host."""
    _settings, host_plan = _load_plan(ctx)

    if as_json:
        click.echo(json.dumps(host_plan.to_dict(), indent=2))
        return

    click.secho(f"\n📋 {host_plan.name}", fg="cyan", bold=True)
    click.echo(f"   Steps: {host_plan.total_steps} | Units: {len(host_plan.units)}")
    click.echo()

    for step in host_plan.steps:
        click.echo(f"   • {step.id:<18} {step.name}")
    if host_plan.config:
        click.echo(f"   • {'platform-config':<18} Render {host_plan.config.path}")
    for unit in host_plan.units:
        click.echo(f"   ⚙ {unit.unit_name:<18} {unit.command_line}")
    for step in host_plan.finalize_steps:
        click.echo(f"   • {step.id:<18} {step.name}")

    click.echo()


@cli.command()
@click.option("--dry-run", is_flag=True, help="Check predicates only; change nothing.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def apply(ctx: click.Context, dry_run: bool, as_json: bool) -> None:
    """Provision this host.

    Examples:

        provisioner apply

        provisioner apply --dry-run

        provisioner -c /etc/provisioner/host.yml apply
    """
    from provisioner.core.use_cases.provision import provision

    result = provision(config_path=ctx.obj.get("config_path"), dry_run=dry_run)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if result.report is None:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    report = result.report
    mode_label = "[dry-run] " if dry_run else ""
    name = result.plan.name if result.plan else ""
    click.secho(f"\n⚡ {mode_label}{name}", fg="cyan", bold=True)
    click.echo()

    for receipt in report.receipts:
        marker, color = _STATUS_STYLE.get(receipt.status, ("?", "white"))
        click.secho(f"   {marker} {receipt.step_id}", fg=color, nl=False)
        timing = f" ({receipt.duration_ms}ms)" if receipt.duration_ms else ""
        click.echo(f" {receipt.status}{timing}")
        if receipt.failed and receipt.error:
            for line in receipt.error.split("\n")[:5]:
                click.echo(f"     │ {line}")
        elif ctx.obj.get("verbose") and receipt.output:
            for line in receipt.output.split("\n")[:10]:
                click.echo(f"     │ {line}")

    for unit, info in report.units.items():
        color = "green" if info.get("status") == "active" else "red"
        click.secho(f"   ⚙ {unit}", fg=color, nl=False)
        click.echo(f" {info.get('action')} ({info.get('status')})")

    click.echo()
    if not result.ok:
        if result.failed_step:
            click.secho(f"❌ Halted at step '{result.failed_step}'", fg="red", bold=True)
        click.secho(f"   {result.error}", fg="red")
        click.echo()
        sys.exit(1)

    click.secho(
        f"   Result: {report.applied} applied, {report.satisfied} already satisfied",
        fg="green",
        bold=True,
    )
    if not ctx.obj.get("quiet") and result.plan and not dry_run:
        click.echo()
        for notice in result.plan.notices:
            click.secho(f"   ℹ️  {notice}", fg="cyan")
    click.echo()


@cli.command("render-config")
@click.option("--show-secrets", is_flag=True, help="Print secret values instead of masking them.")
@click.pass_context
def render_config(ctx: click.Context, show_secrets: bool) -> None:
    """Print the platform config file apply would write."""
    from provisioner.core.errors import RenderError
    from provisioner.core.services.config_render import render_text

    _settings, host_plan = _load_plan(ctx)
    if host_plan.config is None:
        return

    defaults = host_plan.config.defaults
    if not show_secrets:
        defaults = {
            section: {
                key: str(value) if isinstance(value, SecretStr) else value
                for key, value in options.items()
            }
            for section, options in defaults.items()
        }

    try:
        click.echo(render_text(defaults, host_plan.config.overrides), nl=False)
    except RenderError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the last run and the current state of the platform daemons."""
    from provisioner.core.use_cases.status import get_status

    result = get_status(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    settings = result.settings
    assert settings is not None  # guaranteed after error check above

    click.secho(f"\n📋 {settings.role}", fg="cyan", bold=True)
    click.echo(f"   Platform {settings.platform.version} at {settings.platform.home}")
    click.echo()

    run = result.state.last_run if result.state else None
    if run and run.operation_id:
        click.secho("   Last run:", fg="white", bold=True)
        color = {"completed": "green", "failed": "red"}.get(run.state, "white")
        click.echo(f"     {run.operation_id} — ", nl=False)
        click.secho(run.state, fg=color)
        click.echo(
            f"     {run.steps_applied} applied, {run.steps_satisfied} already satisfied"
            f" of {run.steps_total}"
        )
        if run.failed_step:
            click.secho(f"     halted at '{run.failed_step}': {run.error}", fg="red")
        if run.ended_at:
            click.echo(f"     at {run.ended_at}")
    else:
        click.echo("   No recorded run.")

    if len(result.recent_runs) > 1:
        click.echo()
        click.secho("   History:", fg="white", bold=True)
        for entry in result.recent_runs:
            click.echo(f"     {entry.summary()}")

    click.echo()
    click.secho("   Units:", fg="white", bold=True)
    for name, unit_status in result.units.items():
        color = {"active": "green", "failed": "red"}.get(unit_status, "yellow")
        click.echo(f"     • {name} ", nl=False)
        click.secho(unit_status, fg=color)

    click.echo()


@cli.group()
def config() -> None:
    """Host configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate host.yml configuration."""
    from provisioner.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)
        return

    if result.valid:
        assert result.settings is not None  # guaranteed when valid
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Role: {result.settings.role}")
        click.echo(f"   Platform: {result.settings.platform.version}")
        click.echo(f"   Overrides: {len(result.settings.config_overrides)} section(s)")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


if __name__ == "__main__":
    cli()
