"""Scheduling subsystem: due-reminder evaluation and firing.

Public API:
- matches: Five-field cron matcher over wall-clock components
- is_due / filter_due: Decide which reminders fire at an instant
- ReminderProcessor: Builds and delivers the text for one due reminder
- ReminderScheduler: Timer loop that runs ticks without overlap

Types:
- Reminder, ReminderStatus, AgentResult, TickResult
- LocalTime: Wall-clock components in a reminder's timezone
"""

from chime.scheduling.cron import (
    InvalidCronExpression,
    matches,
    next_fire_time,
    validate_expression,
)
from chime.scheduling.evaluator import filter_due, is_due
from chime.scheduling.handler import ReminderProcessor, split_parts
from chime.scheduling.timezones import InvalidTimezone, LocalTime, project_to_zone
from chime.scheduling.types import (
    AgentInvoker,
    AgentResult,
    DeliveryAdapter,
    Reminder,
    ReminderRepository,
    ReminderStatus,
    SessionRepository,
    TickResult,
)
from chime.scheduling.watcher import ReminderScheduler

__all__ = [
    "AgentInvoker",
    "AgentResult",
    "DeliveryAdapter",
    "InvalidCronExpression",
    "InvalidTimezone",
    "LocalTime",
    "Reminder",
    "ReminderProcessor",
    "ReminderRepository",
    "ReminderScheduler",
    "ReminderStatus",
    "SessionRepository",
    "TickResult",
    "filter_due",
    "is_due",
    "matches",
    "next_fire_time",
    "project_to_zone",
    "split_parts",
    "validate_expression",
]
