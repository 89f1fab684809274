"""CLI entry point for mongoshift."""

from typing import Annotated

import typer
from rich.console import Console

from mongoshift import __version__
from mongoshift.cli.commands.migrate import migrate_app

app = typer.Typer(
    name="mongoshift",
    help="Apply change units to MongoDB exactly once",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(migrate_app, name="migrate", help="Database migration commands")

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"mongoshift version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """
    mongoshift CLI.

    [bold]Quick Start:[/bold]

        # Apply change units
        mongoshift migrate up --provider myapp.changelogs:provider

        # Show applied changes and lock state
        mongoshift migrate status

        # Clear a lock left by a crashed process
        mongoshift migrate unlock --force

    [bold]Environment Variables:[/bold]

        MONGOSHIFT_MONGODB        - MongoDB URI
        MONGOSHIFT_DATABASE_NAME  - Target database
        MONGOSHIFT_PROVIDER       - Default provider path
        MONGOSHIFT_WAIT_FOR_LOCK  - Wait for a held lock (true/false)
    """


if __name__ == "__main__":
    app()
