"""Decide whether a reminder must fire at a given instant."""

import logging
from collections.abc import Iterable
from datetime import datetime

from chime.scheduling.cron import matches
from chime.scheduling.timezones import (
    InvalidTimezone,
    ZoneProjector,
    ensure_utc,
    project_to_zone,
    truncate_to_minute,
)
from chime.scheduling.types import Reminder

logger = logging.getLogger(__name__)


def is_due(
    reminder: Reminder,
    now: datetime,
    *,
    project: ZoneProjector = project_to_zone,
) -> bool:
    """Check if a reminder is due at ``now``.

    One-time reminders are due once ``scheduled_for <= now``. Recurring
    reminders must pass, in order: the same-minute dedup guard, the start
    bound, the end bound, and finally a cron match against ``now`` projected
    into the reminder's timezone.

    Never raises for bad data: a malformed expression or unknown timezone
    makes the reminder not due and is logged at ERROR level.
    """
    now = ensure_utc(now)
    scheduled_for = ensure_utc(reminder.scheduled_for)

    if reminder.cron_expression is None:
        return scheduled_for <= now

    if reminder.last_sent is not None:
        last_minute = truncate_to_minute(ensure_utc(reminder.last_sent))
        if last_minute == truncate_to_minute(now):
            return False

    if now < scheduled_for:
        return False

    if reminder.end_date is not None and now > ensure_utc(reminder.end_date):
        return False

    try:
        local = project(now, reminder.timezone)
    except InvalidTimezone as e:
        logger.error(
            "reminder_timezone_invalid",
            extra={
                "reminder.id": reminder.id,
                "reminder.timezone": reminder.timezone,
                "error.message": str(e),
            },
        )
        return False

    if not matches(reminder.cron_expression, local):
        return False

    logger.debug(
        f"Reminder {reminder.id}: cron='{reminder.cron_expression}' "
        f"(tz={reminder.timezone}) matches {now.isoformat()}"
    )
    return True


def filter_due(
    reminders: Iterable[Reminder],
    now: datetime,
    *,
    project: ZoneProjector = project_to_zone,
) -> list[Reminder]:
    """Return the reminders that are due at ``now``.

    A reminder whose evaluation raises unexpectedly is logged and left out
    rather than aborting the whole batch.
    """
    due: list[Reminder] = []
    for reminder in reminders:
        try:
            if is_due(reminder, now, project=project):
                due.append(reminder)
        except Exception as e:
            logger.error(
                "reminder_evaluation_failed",
                extra={"reminder.id": reminder.id, "error.message": str(e)},
                exc_info=True,
            )
    return due
