"""SQLAlchemy-backed reminder storage."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chime.db.engine import Database
from chime.db.models import Conversation
from chime.db.models import Reminder as ReminderRow
from chime.scheduling.cron import validate_expression
from chime.scheduling.evaluator import filter_due
from chime.scheduling.timezones import (
    DEFAULT_TIMEZONE,
    ensure_utc,
    get_zone,
    to_utc,
    utc_now,
)
from chime.scheduling.types import Reminder, ReminderStatus
from chime.store.mappers import row_to_reminder

logger = logging.getLogger(__name__)


class ReminderNotFound(LookupError):
    """Raised when a reminder does not exist for the given destination."""


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


# Distinguishes "leave unchanged" from an explicit None (clear the field)
UNSET: Any = _Unset()


class ReminderStore:
    """Reminder CRUD plus the scheduler's pending query and fire transition."""

    def __init__(self, database: Database) -> None:
        self._db = database

    # ------------------------------------------------------------------
    # Scheduler contract
    # ------------------------------------------------------------------

    async def list_pending(self) -> list[Reminder]:
        """Return every pending reminder; due-ness is decided by the caller."""
        async with self._db.session() as session:
            result = await session.execute(
                select(ReminderRow).where(
                    ReminderRow.status == ReminderStatus.PENDING.value
                )
            )
            return [row_to_reminder(row) for row in result.scalars()]

    async def mark_fired(self, reminder_id: str, fired_at: datetime) -> bool:
        """Record a successful fire.

        The update only applies while the row is still pending, so a cancel
        that raced with delivery is never overwritten. Whether the reminder
        completes is decided from the row as it is now: a reminder with no
        cron expression moves to ``sent``, a recurring one stays pending.
        An edit made during delivery therefore gets the transition it asks for.

        Args:
            reminder_id: Reminder that fired.
            fired_at: Tick instant, stored as ``last_sent``.

        Returns:
            True if the row was updated, False if it is no longer pending.
        """
        fired_at = ensure_utc(fired_at)

        async with self._db.session() as session:
            result = await session.execute(
                update(ReminderRow)
                .where(
                    ReminderRow.id == reminder_id,
                    ReminderRow.status == ReminderStatus.PENDING.value,
                )
                .values(
                    last_sent=fired_at,
                    updated_at=fired_at,
                    status=case(
                        (
                            ReminderRow.cron_expression.is_(None),
                            ReminderStatus.SENT.value,
                        ),
                        else_=ReminderRow.status,
                    ),
                )
                .execution_options(synchronize_session=False)
            )
            updated = result.rowcount == 1

        if not updated:
            logger.warning(
                "reminder_no_longer_pending",
                extra={"reminder.id": reminder_id},
            )
        return updated

    # ------------------------------------------------------------------
    # Management operations
    # ------------------------------------------------------------------

    async def create(
        self,
        destination_id: str,
        message: str,
        scheduled_for: datetime,
        *,
        timezone: str = DEFAULT_TIMEZONE,
        process_with_agent: bool = False,
        cron_expression: str | None = None,
        end_date: datetime | None = None,
        now: datetime | None = None,
    ) -> Reminder:
        """Create a pending reminder.

        Naive ``scheduled_for``/``end_date`` values are read as wall-clock
        time in ``timezone``.

        Raises:
            InvalidTimezone: If ``timezone`` is unknown.
            InvalidCronExpression: If ``cron_expression`` is not supported.
            ValueError: If the message is empty or a one-time reminder is
                scheduled in the past.
        """
        if not message.strip():
            raise ValueError("Reminder message must not be empty")

        get_zone(timezone)
        if cron_expression is not None:
            cron_expression = validate_expression(cron_expression)

        scheduled_utc = to_utc(scheduled_for, timezone)
        end_utc = to_utc(end_date, timezone) if end_date else None

        now = ensure_utc(now) if now else utc_now()
        if cron_expression is None and scheduled_utc < now:
            raise ValueError(
                f"Cannot schedule a reminder in the past ({scheduled_for} {timezone})"
            )

        row = ReminderRow(
            id=str(uuid.uuid4()),
            conversation_id=destination_id,
            message=message,
            scheduled_for=scheduled_utc,
            timezone=timezone,
            status=ReminderStatus.PENDING.value,
            process_with_agent=process_with_agent,
            cron_expression=cron_expression,
            end_date=end_utc,
            created_at=now,
            updated_at=now,
        )

        async with self._db.session() as session:
            await _ensure_conversation(session, destination_id)
            session.add(row)

        logger.info(
            "reminder_created",
            extra={
                "reminder.id": row.id,
                "messaging.chat_id": destination_id,
                "schedule.cron": cron_expression,
                "schedule.scheduled_for": scheduled_utc.isoformat(),
            },
        )
        return row_to_reminder(row)

    async def get(self, reminder_id: str) -> Reminder | None:
        async with self._db.session() as session:
            row = await session.get(ReminderRow, reminder_id)
            return row_to_reminder(row) if row else None

    async def list_for_destination(
        self,
        destination_id: str | None = None,
        *,
        status: ReminderStatus | None = None,
        upcoming_only: bool = False,
        limit: int | None = 10,
        now: datetime | None = None,
    ) -> list[Reminder]:
        """List reminders ordered by ``scheduled_for``.

        Args:
            destination_id: Restrict to one destination (None = all).
            status: Restrict to one status.
            upcoming_only: Only reminders scheduled after ``now``.
            limit: Maximum number of rows (None = no limit).
        """
        stmt = select(ReminderRow).order_by(ReminderRow.scheduled_for)
        if destination_id is not None:
            stmt = stmt.where(ReminderRow.conversation_id == destination_id)
        if status is not None:
            stmt = stmt.where(ReminderRow.status == status.value)
        if upcoming_only:
            stmt = stmt.where(ReminderRow.scheduled_for >= (now or utc_now()))
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self._db.session() as session:
            result = await session.execute(stmt)
            return [row_to_reminder(row) for row in result.scalars()]

    async def cancel(self, destination_id: str, reminder_id: str) -> Reminder:
        """Cancel a reminder. Cancelling is a status change, never a delete.

        Raises:
            ReminderNotFound: If the reminder does not belong to the destination.
        """
        async with self._db.session() as session:
            row = await _get_owned(session, destination_id, reminder_id)
            row.status = ReminderStatus.CANCELLED.value
            row.updated_at = utc_now()
            reminder = row_to_reminder(row)

        logger.info(
            "reminder_cancelled",
            extra={"reminder.id": reminder_id, "messaging.chat_id": destination_id},
        )
        return reminder

    async def edit(
        self,
        destination_id: str,
        reminder_id: str,
        *,
        message: str | None = None,
        scheduled_for: datetime | None = None,
        cron_expression: str | None = UNSET,
        end_date: datetime | None = UNSET,
    ) -> Reminder:
        """Edit an existing reminder.

        ``cron_expression=None`` converts a recurring reminder to one-time and
        ``end_date=None`` clears the end bound; omitted fields stay unchanged.
        Naive datetimes are read in the reminder's own timezone.

        Raises:
            ReminderNotFound: If the reminder does not belong to the destination.
            InvalidCronExpression: If the new expression is not supported.
            ValueError: If no field is provided.
        """
        if (
            message is None
            and scheduled_for is None
            and cron_expression is UNSET
            and end_date is UNSET
        ):
            raise ValueError("At least one updatable field must be provided")

        if cron_expression is not UNSET and cron_expression is not None:
            cron_expression = validate_expression(cron_expression)

        async with self._db.session() as session:
            row = await _get_owned(session, destination_id, reminder_id)
            if message is not None:
                row.message = message
            if scheduled_for is not None:
                row.scheduled_for = to_utc(scheduled_for, row.timezone)
            if cron_expression is not UNSET:
                row.cron_expression = cron_expression
            if end_date is not UNSET:
                row.end_date = to_utc(end_date, row.timezone) if end_date else None
            row.updated_at = utc_now()
            reminder = row_to_reminder(row)

        logger.info(
            "reminder_updated",
            extra={"reminder.id": reminder_id, "messaging.chat_id": destination_id},
        )
        return reminder

    async def get_stats(self, now: datetime | None = None) -> dict[str, Any]:
        now = now or utc_now()
        pending = await self.list_pending()
        recurring = sum(1 for r in pending if r.is_recurring)

        async with self._db.session() as session:
            result = await session.execute(
                select(ReminderRow.status, func.count()).group_by(ReminderRow.status)
            )
            by_status = {status: count for status, count in result.all()}

        return {
            "pending": len(pending),
            "one_time": len(pending) - recurring,
            "recurring": recurring,
            "due": len(filter_due(pending, now)),
            "sent": by_status.get(ReminderStatus.SENT.value, 0),
            "cancelled": by_status.get(ReminderStatus.CANCELLED.value, 0),
        }


async def _ensure_conversation(session: AsyncSession, destination_id: str) -> None:
    if await session.get(Conversation, destination_id) is None:
        session.add(Conversation(id=destination_id))
        await session.flush()


async def _get_owned(
    session: AsyncSession, destination_id: str, reminder_id: str
) -> ReminderRow:
    result = await session.execute(
        select(ReminderRow).where(
            ReminderRow.id == reminder_id,
            ReminderRow.conversation_id == destination_id,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise ReminderNotFound(
            f"Reminder {reminder_id} not found for conversation {destination_id}"
        )
    return row
