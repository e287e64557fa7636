"""Commands for running the reminder scheduler."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer

from chime.cli.console import console, create_table, dim, error, success, warning

logger = logging.getLogger(__name__)

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to configuration file",
    ),
]


def register(app: typer.Typer) -> None:
    """Register the serve and tick commands."""

    @app.command()
    def serve(config: ConfigOption = None) -> None:
        """Run the reminder scheduler until interrupted."""
        try:
            asyncio.run(_run_server(config))
        except KeyboardInterrupt:
            # Use print here since logging may not be configured yet
            print("\nScheduler stopped")

    @app.command()
    def tick(config: ConfigOption = None) -> None:
        """Run a single scheduler tick and report what fired."""
        asyncio.run(_run_tick(config))


async def _run_server(config_path: Path | None) -> None:
    import signal as signal_module

    from chime.cli.runtime import build_scheduler, open_database, resolve_config
    from chime.config import ConfigError
    from chime.logging import configure_logging

    chime_config = resolve_config(config_path)
    configure_logging(
        level=chime_config.logging.level,
        use_rich=True,
        log_to_file=chime_config.logging.log_to_file,
        retention_days=chime_config.logging.retention_days,
    )

    logger.info("Initializing database")
    async with open_database(chime_config) as database:
        try:
            runtime = build_scheduler(chime_config, database)
        except ConfigError as e:
            logger.error("scheduler_config_invalid", extra={"error.message": str(e)})
            raise typer.Exit(1) from e

        shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal_module.SIGTERM, signal_module.SIGINT):
            loop.add_signal_handler(sig, shutdown_event.set)

        try:
            await runtime.scheduler.start()
            await shutdown_event.wait()
            logger.info("Shutdown requested")
        finally:
            await runtime.scheduler.stop()
            await runtime.close()


async def _run_tick(config_path: Path | None) -> None:
    from chime.cli.runtime import build_scheduler, open_database, resolve_config
    from chime.config import ConfigError
    from chime.logging import configure_logging

    chime_config = resolve_config(config_path)
    configure_logging(level=chime_config.logging.level)

    async with open_database(chime_config) as database:
        try:
            runtime = build_scheduler(chime_config, database)
        except ConfigError as e:
            error(str(e))
            raise typer.Exit(1) from e

        try:
            result = await runtime.scheduler.run_tick()
        finally:
            await runtime.close()

    if result.error:
        error(f"Tick aborted: {result.error}")
        raise typer.Exit(1)

    table = create_table(
        f"Tick at {result.started_at:%Y-%m-%d %H:%M:%S} UTC",
        [("Metric", "cyan"), ("Value", "")],
    )
    table.add_row("Pending", str(result.pending))
    table.add_row("Due", str(result.due))
    table.add_row("Fired", str(len(result.fired)))
    table.add_row("Failed", str(len(result.failed)))
    console.print(table)

    if result.failed:
        warning(f"Failed: {', '.join(result.failed)}")
    elif result.fired:
        success(f"Fired {len(result.fired)} reminder(s)")
    else:
        dim("Nothing due")
