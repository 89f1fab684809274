"""
Migration CLI commands for running change units and inspecting state.
"""

import asyncio
from typing import Annotated, Optional

import typer

from mongoshift.cli.output import console, print_error, print_json, print_ledger, print_report
from mongoshift.core.config import MigrationSettings, get_settings
from mongoshift.core.mongo import create_client
from mongoshift.log.logging import configure_logging
from mongoshift.migrations.exceptions import MigrationError
from mongoshift.migrations.provider import StaticChangeUnitProvider, load_provider
from mongoshift.migrations.runner import MigrationRunner

migrate_app = typer.Typer(name="migrate", help="Database migration commands")


def get_runner(settings: MigrationSettings, provider_path: Optional[str] = None) -> MigrationRunner:
    """Build a runner against the configured MongoDB."""
    provider = load_provider(provider_path) if provider_path else StaticChangeUnitProvider([])
    return MigrationRunner(create_client(settings), provider, settings)


def _settings(**overrides) -> MigrationSettings:
    settings = get_settings(**{k: v for k, v in overrides.items() if v is not None})
    configure_logging(settings.log_level, settings.json_logs)
    return settings


@migrate_app.command("up")
def up(
    provider: Annotated[
        str,
        typer.Option(
            "--provider",
            "-p",
            envvar="MONGOSHIFT_PROVIDER",
            help="Change unit provider as package.module:attribute",
        ),
    ],
    database: Annotated[
        Optional[str],
        typer.Option("--database", "-d", help="Target database name"),
    ] = None,
    wait: Annotated[
        Optional[bool],
        typer.Option("--wait/--no-wait", help="Wait for the lock if another runner holds it"),
    ] = None,
    throw: Annotated[
        Optional[bool],
        typer.Option("--throw/--no-throw", help="Fail if the lock cannot be obtained"),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the run report as JSON"),
    ] = False,
):
    """Apply change units supplied by a provider."""
    settings = _settings(
        database_name=database,
        wait_for_lock=wait,
        throw_if_cannot_obtain_lock=throw,
    )

    async def _up():
        runner = get_runner(settings, provider)
        try:
            return await runner.execute()
        finally:
            runner.close()

    try:
        report = asyncio.run(_up())
    except MigrationError as e:
        if e.report is not None:
            if as_json:
                print_json(e.report.to_dict())
            else:
                print_report(e.report)
        print_error(f"Migration failed: {e}")
        raise typer.Exit(1)
    except Exception as e:
        print_error(f"Migration failed: {e}")
        raise typer.Exit(1)

    if as_json:
        print_json(report.to_dict())
    else:
        print_report(report)


@migrate_app.command("status")
def status(
    database: Annotated[
        Optional[str],
        typer.Option("--database", "-d", help="Target database name"),
    ] = None,
):
    """Show applied change units and the lock holder."""
    settings = _settings(database_name=database)

    async def _status():
        runner = get_runner(settings)
        try:
            runner.connect()
            return await runner.ledger.list_records(), await runner.lock.get_holder()
        finally:
            runner.close()

    try:
        records, holder = asyncio.run(_status())
    except Exception as e:
        print_error(f"Failed to get migration status: {e}")
        raise typer.Exit(1)

    print_ledger(records, holder)


@migrate_app.command("unlock")
def unlock(
    database: Annotated[
        Optional[str],
        typer.Option("--database", "-d", help="Target database name"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Skip confirmation prompt"),
    ] = False,
):
    """Remove a lock left behind by a crashed runner."""
    if not force:
        confirm = typer.confirm(
            "Are you sure no migration is running? Removing a live lock allows concurrent runs."
        )
        if not confirm:
            console.print("[yellow]Unlock cancelled.[/yellow]")
            raise typer.Exit(0)

    settings = _settings(database_name=database)

    async def _unlock():
        runner = get_runner(settings)
        try:
            runner.connect()
            return await runner.lock.force_release()
        finally:
            runner.close()

    try:
        removed = asyncio.run(_unlock())
    except Exception as e:
        print_error(f"Failed to remove migration lock: {e}")
        raise typer.Exit(1)

    if removed:
        console.print("[green]Migration lock removed.[/green]")
    else:
        console.print("[dim]No migration lock was held.[/dim]")
