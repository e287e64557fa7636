"""Reminder management commands."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer

from chime.cli.console import (
    confirm_or_cancel,
    console,
    create_table,
    dim,
    error,
    format_countdown,
    success,
    warning,
)
from chime.scheduling import InvalidCronExpression, InvalidTimezone, ReminderStatus

if TYPE_CHECKING:
    from chime.store import ReminderStore

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to configuration file"),
]


def _parse_datetime(value: str | None, option: str) -> datetime | None:
    """Parse an ISO 8601 value; naive values are read in the reminder's timezone."""
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        error(f"Invalid {option}: {value!r} (expected ISO 8601, e.g. 2025-03-01T09:00)")
        raise typer.Exit(1) from e


def _truncate(text: str, max_len: int = 40) -> str:
    return text[:max_len] + "..." if len(text) > max_len else text


def register(app: typer.Typer) -> None:
    """Register the reminders command group."""
    reminders_app = typer.Typer(help="Manage reminders", no_args_is_help=True)

    @reminders_app.command("list")
    def reminders_list(
        chat: Annotated[
            str | None,
            typer.Option("--chat", help="Only reminders for this chat ID"),
        ] = None,
        status: Annotated[
            ReminderStatus | None,
            typer.Option("--status", "-s", help="Filter by status"),
        ] = ReminderStatus.PENDING,
        show_all: Annotated[
            bool,
            typer.Option("--all", "-a", help="Show reminders in every status"),
        ] = False,
        limit: Annotated[
            int,
            typer.Option("--limit", "-n", help="Maximum number of reminders"),
        ] = 20,
        config: ConfigOption = None,
    ) -> None:
        """List reminders with their next fire time.

        Examples:
            chime reminders list
            chime reminders list --chat 123456 --all
        """
        asyncio.run(_list(config, chat, None if show_all else status, limit))

    @reminders_app.command("add")
    def reminders_add(
        chat: Annotated[str, typer.Argument(help="Destination chat ID")],
        message: Annotated[str, typer.Argument(help="Reminder text or agent prompt")],
        at: Annotated[
            str | None,
            typer.Option(
                "--at",
                help="When to fire (one-time) or start (recurring), ISO 8601",
            ),
        ] = None,
        cron: Annotated[
            str | None,
            typer.Option("--cron", help="Five-field cron expression for recurrence"),
        ] = None,
        until: Annotated[
            str | None,
            typer.Option("--until", help="End date for recurring reminders"),
        ] = None,
        tz: Annotated[
            str | None,
            typer.Option("--tz", help="IANA timezone (default from config)"),
        ] = None,
        agent: Annotated[
            bool,
            typer.Option("--agent", help="Process the message with the agent"),
        ] = False,
        config: ConfigOption = None,
    ) -> None:
        """Create a reminder.

        Examples:
            chime reminders add 123456 "Call mom" --at 2025-03-01T18:00
            chime reminders add 123456 "Standup" --cron "0 9 * * 1-5"
            chime reminders add 123456 "Summarize the news" --cron "0 8 * * *" --agent
        """
        if at is None and cron is None:
            error("Provide --at for a one-time reminder or --cron for a recurring one")
            raise typer.Exit(1)
        asyncio.run(
            _add(
                config,
                chat,
                message,
                _parse_datetime(at, "--at"),
                cron,
                _parse_datetime(until, "--until"),
                tz,
                agent,
            )
        )

    @reminders_app.command("cancel")
    def reminders_cancel(
        chat: Annotated[str, typer.Argument(help="Destination chat ID")],
        reminder_id: Annotated[str, typer.Argument(help="Reminder ID")],
        force: Annotated[
            bool,
            typer.Option("--force", "-f", help="Cancel without confirmation"),
        ] = False,
        config: ConfigOption = None,
    ) -> None:
        """Cancel a reminder (it stays in the database as cancelled)."""
        if not confirm_or_cancel(f"Cancel reminder {reminder_id}?", force):
            return
        asyncio.run(_cancel(config, chat, reminder_id))

    @reminders_app.command("edit")
    def reminders_edit(
        chat: Annotated[str, typer.Argument(help="Destination chat ID")],
        reminder_id: Annotated[str, typer.Argument(help="Reminder ID")],
        message: Annotated[
            str | None, typer.Option("--message", "-m", help="New text")
        ] = None,
        at: Annotated[
            str | None, typer.Option("--at", help="New time, ISO 8601")
        ] = None,
        cron: Annotated[
            str | None, typer.Option("--cron", help="New cron expression")
        ] = None,
        once: Annotated[
            bool,
            typer.Option("--once", help="Convert to a one-time reminder"),
        ] = False,
        until: Annotated[
            str | None, typer.Option("--until", help="New end date")
        ] = None,
        no_end: Annotated[
            bool, typer.Option("--no-end", help="Remove the end date")
        ] = False,
        config: ConfigOption = None,
    ) -> None:
        """Edit a reminder's text, time, recurrence or end date."""
        from chime.store import UNSET

        if cron is not None and once:
            error("--cron and --once are mutually exclusive")
            raise typer.Exit(1)
        if until is not None and no_end:
            error("--until and --no-end are mutually exclusive")
            raise typer.Exit(1)

        end_date = _parse_datetime(until, "--until")
        changes: dict[str, Any] = {
            "message": message,
            "scheduled_for": _parse_datetime(at, "--at"),
            "cron_expression": None if once else (UNSET if cron is None else cron),
            "end_date": None if no_end else (UNSET if end_date is None else end_date),
        }
        asyncio.run(_edit(config, chat, reminder_id, changes))

    @reminders_app.command("stats")
    def reminders_stats(config: ConfigOption = None) -> None:
        """Show reminder counts."""
        asyncio.run(_stats(config))

    app.add_typer(reminders_app, name="reminders")


async def _list(
    config_path: Path | None,
    chat: str | None,
    status: ReminderStatus | None,
    limit: int,
) -> None:
    from chime.cli.runtime import open_database, resolve_config
    from chime.scheduling import next_fire_time
    from chime.scheduling.timezones import utc_now
    from chime.store import ReminderStore

    async with open_database(resolve_config(config_path)) as database:
        reminders = await ReminderStore(database).list_for_destination(
            chat, status=status, limit=limit
        )

    if not reminders:
        warning("No reminders found")
        return

    table = create_table(
        None,
        [
            ("ID", "dim"),
            ("Chat", ""),
            ("Message", ""),
            ("Schedule", ""),
            ("Timezone", "dim"),
            ("Status", ""),
            ("Next", ""),
        ],
    )
    for reminder in reminders:
        if reminder.is_recurring:
            assert reminder.cron_expression is not None
            schedule = reminder.cron_expression
            next_fire = None
            if reminder.status is ReminderStatus.PENDING:
                after = max(reminder.scheduled_for, utc_now())
                try:
                    next_fire = next_fire_time(
                        reminder.cron_expression, after, reminder.timezone
                    )
                except InvalidTimezone:
                    next_fire = None
                if reminder.end_date and next_fire and next_fire > reminder.end_date:
                    next_fire = None
        else:
            schedule = f"{reminder.scheduled_for:%Y-%m-%d %H:%M} UTC"
            next_fire = (
                reminder.scheduled_for
                if reminder.status is ReminderStatus.PENDING
                else None
            )
        if reminder.process_with_agent:
            schedule += " [magenta](agent)[/magenta]"

        table.add_row(
            reminder.id[:8],
            reminder.destination_id,
            _truncate(reminder.message),
            schedule,
            reminder.timezone,
            reminder.status.value,
            format_countdown(next_fire),
        )

    console.print(table)
    dim(f"Total: {len(reminders)} reminder(s)")


async def _add(
    config_path: Path | None,
    chat: str,
    message: str,
    at: datetime | None,
    cron: str | None,
    until: datetime | None,
    tz: str | None,
    agent: bool,
) -> None:
    from chime.cli.runtime import open_database, resolve_config
    from chime.scheduling.timezones import utc_now
    from chime.store import ReminderStore

    chime_config = resolve_config(config_path)
    timezone = tz or chime_config.scheduler.default_timezone

    async with open_database(chime_config) as database:
        try:
            reminder = await ReminderStore(database).create(
                chat,
                message,
                at or utc_now(),
                timezone=timezone,
                process_with_agent=agent,
                cron_expression=cron,
                end_date=until,
            )
        except (InvalidCronExpression, InvalidTimezone, ValueError) as e:
            error(str(e))
            raise typer.Exit(1) from e

    success(f"Created reminder {reminder.id}")


async def _cancel(config_path: Path | None, chat: str, reminder_id: str) -> None:
    from chime.cli.runtime import open_database, resolve_config
    from chime.store import ReminderNotFound, ReminderStore

    async with open_database(resolve_config(config_path)) as database:
        store = ReminderStore(database)
        try:
            full_id = await _resolve_id(store, chat, reminder_id)
            reminder = await store.cancel(chat, full_id)
        except ReminderNotFound as e:
            error(str(e))
            raise typer.Exit(1) from e

    success(f"Cancelled: {_truncate(reminder.message, 50)}")


async def _edit(
    config_path: Path | None,
    chat: str,
    reminder_id: str,
    changes: dict[str, Any],
) -> None:
    from chime.cli.runtime import open_database, resolve_config
    from chime.store import ReminderNotFound, ReminderStore

    async with open_database(resolve_config(config_path)) as database:
        store = ReminderStore(database)
        try:
            reminder = await store.edit(
                chat, await _resolve_id(store, chat, reminder_id), **changes
            )
        except (ReminderNotFound, InvalidCronExpression, ValueError) as e:
            error(str(e))
            raise typer.Exit(1) from e

    success(f"Updated reminder {reminder.id}")


async def _stats(config_path: Path | None) -> None:
    from chime.cli.runtime import open_database, resolve_config
    from chime.store import ReminderStore

    async with open_database(resolve_config(config_path)) as database:
        stats = await ReminderStore(database).get_stats()

    table = create_table("Reminders", [("Metric", "cyan"), ("Count", "")])
    for key in ("pending", "one_time", "recurring", "due", "sent", "cancelled"):
        table.add_row(key.replace("_", " ").title(), str(stats[key]))
    console.print(table)


async def _resolve_id(store: ReminderStore, chat: str, reminder_id: str) -> str:
    """Expand a short ID prefix (as shown by ``list``) to the full ID."""
    if len(reminder_id) >= 32:
        return reminder_id
    candidates = [
        r.id
        for r in await store.list_for_destination(chat, limit=None)
        if r.id.startswith(reminder_id)
    ]
    return candidates[0] if len(candidates) == 1 else reminder_id
