"""EKS reconciler CLI (eksr).

Usage:
    eksr reconcile -f cluster.yaml        # Converge AWS toward the spec
    eksr plan -f cluster.yaml             # Show what reconcile would change
    eksr destroy -f cluster.yaml          # Delete everything owned by the project
    eksr destroy -f cluster.yaml --dry-run
    eksr status -f cluster.yaml           # Summarize what exists
    eksr validate -f cluster.yaml         # Check spec and AWS credentials
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import click

from .config import Config
from .errors import ConfigurationError, ReconcileError
from .main import EXIT_CONFIG_ERROR, EXIT_FAILURE, exit_code_for, setup_logging
from .models import ClusterSpec
from .orchestrator import Orchestrator
from .spec_loader import SpecLoadError, load_cluster_spec
from .status import StatusEvent, StatusLevel, StatusReporter

T = TypeVar("T")

STATUS_COLORS = {
    StatusLevel.PROGRESS: "cyan",
    StatusLevel.INFO: None,
    StatusLevel.SUCCESS: "green",
    StatusLevel.WARNING: "yellow",
    StatusLevel.ERROR: "red",
}

STATUS_MARKERS = {
    StatusLevel.PROGRESS: "…",
    StatusLevel.INFO: "-",
    StatusLevel.SUCCESS: "✓",
    StatusLevel.WARNING: "!",
    StatusLevel.ERROR: "✗",
}


def render_status(event: StatusEvent) -> None:
    """Print a status event to stderr."""
    click.secho(
        f"{STATUS_MARKERS[event.level]} {event.message}",
        fg=STATUS_COLORS[event.level],
        err=True,
    )


def load_spec_or_exit(spec_file: Path) -> ClusterSpec:
    try:
        return load_cluster_spec(spec_file)
    except SpecLoadError as e:
        click.secho(f"✗ {e}", fg="red", err=True)
        sys.exit(EXIT_CONFIG_ERROR)


def build_orchestrator(spec: ClusterSpec, quiet: bool) -> Orchestrator:
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        click.secho(f"✗ {e}", fg="red", err=True)
        sys.exit(EXIT_CONFIG_ERROR)
    status = StatusReporter(handler=None if quiet else render_status)
    return Orchestrator.for_spec(spec, config, status)


def run_or_exit(coro: Coroutine[Any, Any, T]) -> T:
    """Run a read-only orchestrator call, exiting 1 on provider errors."""
    try:
        return asyncio.run(coro)
    except ReconcileError as e:
        click.secho(f"✗ {e}", fg="red", err=True)
        sys.exit(EXIT_FAILURE)


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


spec_option = click.option(
    "--spec-file",
    "-f",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="SPEC_FILE",
    required=True,
    help="Path to the cluster spec (YAML)",
)
quiet_option = click.option("--quiet", "-q", is_flag=True, help="Suppress progress output")


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="eksr")
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level")
@click.option("--json-logs", is_flag=True, help="Emit JSON logs to stdout")
def cli(verbose: bool, json_logs: bool) -> None:
    """EKS reconciler CLI (eksr).

    Converges an EKS cluster, its VPC and its node pools toward a
    declarative spec. Every command rediscovers state from AWS tags.
    """
    if json_logs:
        setup_logging(json_output=True)
    else:
        logging.basicConfig(level=logging.WARNING)
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@cli.command()
@spec_option
@quiet_option
def reconcile(spec_file: Path, quiet: bool) -> None:
    """Create or update infrastructure to match the spec."""
    spec = load_spec_or_exit(spec_file)
    orchestrator = build_orchestrator(spec, quiet)

    result = asyncio.run(orchestrator.reconcile(spec))

    if result.success:
        click.secho(
            f"✓ {spec.cluster_name} reconciled in {result.duration_seconds:.0f}s", fg="green"
        )
    else:
        click.secho(f"✗ {result.error}", fg="red", err=True)
    sys.exit(exit_code_for(result))


@cli.command()
@spec_option
@quiet_option
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON")
def plan(spec_file: Path, quiet: bool, as_json: bool) -> None:
    """Show what reconcile would change, without changing anything."""
    spec = load_spec_or_exit(spec_file)
    orchestrator = build_orchestrator(spec, quiet or as_json)

    reconcile_plan = run_or_exit(orchestrator.plan(spec))

    if as_json:
        echo_json(reconcile_plan.to_dict())
    else:
        summary = reconcile_plan.summary()
        click.echo(
            ", ".join(f"{count} {action}" for action, count in summary.items() if count)
            or "nothing to do"
        )
    if reconcile_plan.blocked:
        sys.exit(EXIT_FAILURE)


@cli.command()
@spec_option
@quiet_option
@click.option("--force", is_flag=True, help="Continue past load balancer cleanup errors")
@click.option("--dry-run", is_flag=True, help="List what would be deleted")
@click.option("--yes", "-y", is_flag=True, help="Do not prompt for confirmation")
def destroy(spec_file: Path, quiet: bool, force: bool, dry_run: bool, yes: bool) -> None:
    """Delete every resource owned by the project."""
    spec = load_spec_or_exit(spec_file)
    if not dry_run and not yes:
        click.confirm(
            f"Destroy cluster {spec.cluster_name} in {spec.aws.region}?", abort=True
        )
    orchestrator = build_orchestrator(spec, quiet)

    result = asyncio.run(orchestrator.destroy(spec, force=force, dry_run=dry_run))

    if dry_run:
        if not result.would_delete:
            click.echo("Nothing to delete")
        for stage, names in result.would_delete.items():
            click.echo(f"{stage}: {', '.join(names)}")
    for warning in result.warnings:
        click.secho(f"! {warning}", fg="yellow", err=True)
    if not result.success:
        click.secho(f"✗ {result.error}", fg="red", err=True)
        sys.exit(EXIT_FAILURE)
    if not dry_run:
        click.secho(f"✓ {spec.cluster_name} destroyed", fg="green")


@cli.command()
@spec_option
def status(spec_file: Path) -> None:
    """Print what exists for the project as JSON."""
    spec = load_spec_or_exit(spec_file)
    orchestrator = build_orchestrator(spec, quiet=True)

    state = run_or_exit(orchestrator.query(spec))

    if state is None:
        click.echo(f"No infrastructure found for {spec.cluster_name}")
        return
    echo_json(state.to_dict())


@cli.command()
@spec_option
@click.option("--skip-credentials", is_flag=True, help="Only validate the spec file")
def validate(spec_file: Path, skip_credentials: bool) -> None:
    """Validate the spec file and, optionally, AWS credentials."""
    spec = load_spec_or_exit(spec_file)
    click.secho(f"✓ Spec valid: {spec.cluster_name} ({spec.aws.region})", fg="green")
    if skip_credentials:
        return

    orchestrator = build_orchestrator(spec, quiet=True)
    identity = run_or_exit(orchestrator.validate_credentials())
    click.secho(f"✓ AWS account {identity['account']} as {identity['arn']}", fg="green")


if __name__ == "__main__":
    cli()
