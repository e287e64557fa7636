"""Row mappers for converting ORM rows to domain types."""

from chime.db.models import Reminder as ReminderRow
from chime.scheduling.timezones import ensure_utc
from chime.scheduling.types import Reminder, ReminderStatus


def row_to_reminder(row: ReminderRow) -> Reminder:
    """Convert a reminders row to a Reminder, normalizing timestamps to UTC."""
    return Reminder(
        id=row.id,
        destination_id=row.conversation_id,
        message=row.message,
        scheduled_for=ensure_utc(row.scheduled_for),
        timezone=row.timezone,
        status=ReminderStatus(row.status),
        process_with_agent=bool(row.process_with_agent),
        cron_expression=row.cron_expression,
        end_date=ensure_utc(row.end_date) if row.end_date else None,
        last_sent=ensure_utc(row.last_sent) if row.last_sent else None,
        created_at=ensure_utc(row.created_at) if row.created_at else None,
        updated_at=ensure_utc(row.updated_at) if row.updated_at else None,
    )
