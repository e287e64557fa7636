"""Database management commands.

Provides commands for:
- init: create or upgrade the database to the latest schema
- migrate: upgrade to a specific alembic revision
- status: show the current and latest revisions
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from chime.cli.console import console, dim, success, warning

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to configuration file"),
]


def register(app: typer.Typer) -> None:
    """Register the db command group."""
    db_app = typer.Typer(help="Database management commands", no_args_is_help=True)

    @db_app.command("init")
    def db_init(config: ConfigOption = None) -> None:
        """Create the database and apply all migrations."""
        url, revision = asyncio.run(_migrate(config, "head"))
        success(f"Database ready at revision {revision}")
        dim(url)

    @db_app.command("migrate")
    def db_migrate(
        revision: Annotated[
            str,
            typer.Option(
                "--revision",
                "-r",
                help="Target revision",
            ),
        ] = "head",
        config: ConfigOption = None,
    ) -> None:
        """Run database migrations."""
        console.print(f"[bold]Running migrations to {revision}...[/bold]")
        _, current = asyncio.run(_migrate(config, revision))
        success(f"Migrations completed successfully (revision {current})")

    @db_app.command("status")
    def db_status(config: ConfigOption = None) -> None:
        """Show migration status."""
        from chime.db.engine import head_revision

        current = asyncio.run(_current_revision(config))
        head = head_revision()
        console.print("[bold]Migration status:[/bold]")
        console.print(f"  Current: {current or 'none'}")
        console.print(f"  Latest:  {head}")
        if current != head:
            warning("Database is not up to date; run 'chime db migrate'")

    app.add_typer(db_app, name="db")


async def _migrate(config_path: Path | None, revision: str) -> tuple[str, str | None]:
    from chime.cli.runtime import open_database, resolve_config

    async with open_database(resolve_config(config_path), migrate=False) as database:
        await database.migrate(revision)
        return database.url, await database.current_revision()


async def _current_revision(config_path: Path | None) -> str | None:
    from chime.cli.runtime import open_database, resolve_config

    async with open_database(resolve_config(config_path), migrate=False) as database:
        return await database.current_revision()
