"""
Provision — CLI entrypoint.

Usage:
    python -m provision.main --help
    python -m provision.main run --dry-run
    python -m provision.main run -- --profile work
    python -m provision.main plan
    python -m provision.main facts
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path

import click

from provision import __version__
from provision.core.observability.logging_config import (
    ENV_FILE,
    ENV_FILE_LEVEL,
    resolve_level,
    setup_logging,
)

_STATE_COLORS = {
    "changed": "green",
    "unchanged": "white",
    "error": "red",
    "unknown": "yellow",
}


class ClickStatus:
    """Status sink that echoes progress lines to the terminal."""

    def update(self, message: str) -> None:
        click.secho(f"   … {message}", dim=True)


@click.group()
@click.version_option(version=__version__, prog_name="provision")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to provision.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Provision — declarative, idempotent machine provisioning."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(ENV_FILE),
        log_file_level=os.environ.get(ENV_FILE_LEVEL),
        quiet_third_party=not debug,
    )


def _make_engine(ctx: click.Context):
    """Assemble a run-scoped engine from the configuration file."""
    from provision.core.config.loader import build_catalogs, build_manifests, load_config
    from provision.core.engine.executor import ExecutionEngine
    from provision.core.services.facts import SystemFactBuilder
    from provision.core.services.security import SecurityPrincipal
    from provision.providers.registry import default_repository

    config = load_config(ctx.obj.get("config_path"))
    security = SecurityPrincipal()
    return ExecutionEngine(
        providers=default_repository(),
        fact_builder=SystemFactBuilder(security),
        catalogs=build_catalogs(config),
        manifests=build_manifests(config),
        security=security,
    )


def _fail(message: str) -> None:
    click.secho(f"❌ {message}", fg="red", err=True)
    sys.exit(1)


# ── run ─────────────────────────────────────────────────────────


@cli.command(context_settings={"ignore_unknown_options": True})
@click.option("--dry-run", is_flag=True, help="Plan only, do not touch the machine.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--timeout", type=float, default=None, help="Stop starting new resources after N seconds.")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def run(
    ctx: click.Context,
    dry_run: bool,
    as_json: bool,
    timeout: float | None,
    args: tuple[str, ...],
) -> None:
    """Bring this machine to the declared state.

    Extra ARGS (e.g. --profile work) become facts under 'args.'.
    """
    from provision.core.errors import ProvisionError
    from provision.core.services.status import LoggingStatus

    quiet = ctx.obj.get("quiet", False) or as_json
    status = LoggingStatus() if quiet else ClickStatus()
    try:
        engine = _make_engine(ctx)
        report = asyncio.run(engine.run(args, status, dry_run=dry_run, timeout=timeout))
    except ProvisionError as e:
        _fail(str(e))
        return

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(0 if report.successful else 2)
        return

    if not report.items:
        click.secho("✅ Nothing to do", fg="green")
        return

    title = "📋 Dry run" if report.dry_run else "📋 Run"
    click.secho(f"\n{title}", fg="cyan", bold=True)
    for item in report:
        state = item.state.value
        admin = " (admin)" if item.require_administrator else ""
        click.echo(f"   • {item.resource.type}::{item.resource.name}{admin} → ", nl=False)
        click.secho(state, fg=_STATE_COLORS.get(state, "white"))

    click.echo()
    if report.successful:
        click.secho(
            f"✅ {report.changed} changed, {report.unchanged} unchanged", fg="green", bold=True
        )
    else:
        click.secho(
            f"❌ {report.errors} error(s), {report.changed} changed, {report.unchanged} unchanged",
            fg="red",
            bold=True,
        )
        sys.exit(2)


# ── plan ────────────────────────────────────────────────────────


@cli.command(context_settings={"ignore_unknown_options": True})
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def plan(ctx: click.Context, as_json: bool, args: tuple[str, ...]) -> None:
    """Show the execution plan without running it."""
    from provision.core.errors import ProvisionError

    try:
        prepared = _make_engine(ctx).prepare(args)
    except ProvisionError as e:
        _fail(str(e))
        return

    if as_json:
        result = prepared.plan.to_dict()
        result["catalogs"] = [c.name for c in prepared.catalogs]
        result["manifests"] = [m.name for m in prepared.manifests]
        click.echo(json.dumps(result, indent=2))
        return

    click.secho(f"\n📋 Plan ({len(prepared.plan)} resource(s))", fg="cyan", bold=True)
    click.echo(f"   Catalogs:  {', '.join(c.name for c in prepared.catalogs) or '-'}")
    click.echo(f"   Manifests: {', '.join(m.name for m in prepared.manifests) or '-'}")
    if prepared.plan.requires_administrator:
        click.secho("   Requires administrator", fg="yellow")
    click.echo()
    for i, item in enumerate(prepared.plan, start=1):
        after = ", ".join(str(r) for r in item.resource.after)
        after_label = f"  (after {after})" if after else ""
        admin = " [admin]" if item.require_administrator else ""
        click.echo(f"   {i:>3}. {item.resource.type}::{item.resource.name}{admin}{after_label}")
    click.echo()


# ── facts ───────────────────────────────────────────────────────


@cli.command(context_settings={"ignore_unknown_options": True})
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def facts(as_json: bool, args: tuple[str, ...]) -> None:
    """Show the facts collected for this machine."""
    from provision.core.services.facts import SystemFactBuilder

    collected = SystemFactBuilder().build(args)
    if as_json:
        click.echo(json.dumps(collected.to_dict(), indent=2))
        return

    for path, value in sorted(collected.paths().items()):
        click.echo(f"   {path} = {value!r}")


# ── providers ───────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def providers(as_json: bool) -> None:
    """List the registered resource providers."""
    from provision.core.services.facts import SystemFactBuilder
    from provision.providers.registry import default_repository

    status = default_repository().provider_status(SystemFactBuilder().build(()))
    if as_json:
        click.echo(json.dumps(status, indent=2))
        return

    for resource_type, info in status.items():
        marker = "✓" if info["available"] else "✗"
        admin = " (admin)" if info["require_administrator"] else ""
        click.echo(f"   {marker} {resource_type}{admin}  → {info['provider']}")


# ── check ───────────────────────────────────────────────────────


@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Validate provision.yml."""
    from provision.core.config.loader import check_config, load_config
    from provision.core.errors import ConfigError

    try:
        config = load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        _fail(str(e))
        return

    click.secho("✅ Configuration is valid", fg="green", bold=True)
    click.echo(f"   Catalogs:  {len(config.catalogs)}")
    click.echo(f"   Manifests: {len(config.manifests)}")

    warnings = check_config(config)
    if warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in warnings:
            click.echo(f"   • {warn}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
