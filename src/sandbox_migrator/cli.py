"""Sandbox migrator CLI (smig).

Developer tool for running the action locally and inspecting migrations
without touching the remote service.

Usage:
    smig run --config-file smig.yaml --event-name push --event-path event.json
    smig name "GH-[branch]" --branch feature/new-func
    smig versions ./migrations
    smig pending ./migrations --current 1.0.1
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click

from .config import DEFAULT_MIGRATION_EXTENSION, Config
from .errors import SandboxMigratorError
from .github_context import load_event_payload, resolve_branch_context
from .main import execute, setup_logging, write_outputs
from .names import resolve
from .sequencer import compute_pending
from .versions import list_migration_scripts

# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="smig")
def cli() -> None:
    """Sandbox migrator CLI (smig).

    Provision per-branch environments and apply ordered migrations.

    \b
    Quick Start:
        smig versions ./migrations    # List migrations in order
        smig run --config-file x.yaml # Run the full action locally
    """
    pass


# =============================================================================
# Run Command
# =============================================================================


@cli.command()
@click.option(
    "--config-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML file with action inputs (default: read INPUT_* variables)",
)
@click.option("--event-name", envvar="GITHUB_EVENT_NAME", required=True, help="Triggering event")
@click.option(
    "--event-path",
    envvar="GITHUB_EVENT_PATH",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Webhook payload JSON",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def run(config_file: Path | None, event_name: str, event_path: Path, verbose: bool) -> None:
    """Run the action locally.

    \b
    Examples:
        smig run --config-file smig.yaml --event-name push --event-path push.json
    """
    try:
        config = Config.from_yaml(config_file) if config_file else Config.from_env()
        context = resolve_branch_context(event_name, load_event_payload(event_path))
    except SandboxMigratorError as e:
        raise click.ClickException(e.message) from e

    setup_logging(verbose or config.verbose)
    logger = logging.getLogger("sandbox_migrator")

    try:
        result = asyncio.run(execute(config, context, logger))
    except SandboxMigratorError as e:
        raise click.ClickException(e.message) from e

    write_outputs(result.outputs)
    click.secho(f"✓ Environment {result.environment_id} ready", fg="green")
    click.echo(f"  URL: {result.environment_url}")
    click.echo(f"  Version: {result.migrations.current_version}")
    for error in result.recovered:
        click.secho(f"  ! {error.step}: {error.message}", fg="yellow")


# =============================================================================
# Inspection Commands
# =============================================================================


@cli.command()
@click.argument("pattern")
@click.option("--branch", "-b", help="Branch name for the [branch] token")
def name(pattern: str, branch: str | None) -> None:
    """Resolve an environment name pattern."""
    click.echo(resolve(pattern, branch_name=branch))


@cli.command()
@click.argument(
    "migrations_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option("--extension", "-e", default=DEFAULT_MIGRATION_EXTENSION, help="Script extension")
def versions(migrations_dir: Path, extension: str) -> None:
    """List migration versions in application order."""
    try:
        scripts = list_migration_scripts(migrations_dir, extension)
    except SandboxMigratorError as e:
        raise click.ClickException(e.message) from e

    if not scripts:
        click.echo("No migrations found")
        return
    for script in scripts:
        click.echo(f"{script.version}\t{script.path.name}")


@cli.command()
@click.argument(
    "migrations_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option("--current", "-c", required=True, help="Version recorded in the environment")
@click.option("--extension", "-e", default=DEFAULT_MIGRATION_EXTENSION, help="Script extension")
def pending(migrations_dir: Path, current: str, extension: str) -> None:
    """List migrations that would run after the current version."""
    try:
        scripts = list_migration_scripts(migrations_dir, extension)
        to_run = compute_pending([script.version for script in scripts], current)
    except SandboxMigratorError as e:
        raise click.ClickException(e.message) from e

    if not to_run:
        click.echo(f"Up to date at {current}")
        return
    for version in to_run:
        click.echo(version)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
