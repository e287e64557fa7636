"""Reminder types and collaborator contracts.

Public types:
- Reminder: A one-time or recurring reminder record
- ReminderStatus: Lifecycle status of a reminder
- AgentResult: Outcome of running a prompt through the agent
- TickResult: Summary of one scheduler tick

Collaborators (implemented outside the scheduling core):
- ReminderRepository: Pending query + conditional post-fire update
- SessionRepository: Resumable agent session token per destination
- AgentInvoker: Runs a prompt through the hosted agent
- DeliveryAdapter: Sends text to a destination
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Protocol

from chime.scheduling.timezones import DEFAULT_TIMEZONE


class ReminderStatus(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    CANCELLED = "cancelled"


@dataclass
class Reminder:
    """A reminder record.

    One-time reminders have no ``cron_expression``; they fire once at
    ``scheduled_for`` and move to ``sent``. Recurring reminders stay
    ``pending`` forever and stop firing after ``end_date``.
    """

    id: str
    destination_id: str
    message: str
    scheduled_for: datetime  # One-time fire instant, or recurrence start
    timezone: str = DEFAULT_TIMEZONE
    status: ReminderStatus = ReminderStatus.PENDING
    # If true, message is a prompt for the agent rather than literal text
    process_with_agent: bool = False
    cron_expression: str | None = None
    end_date: datetime | None = None
    last_sent: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_recurring(self) -> bool:
        return self.cron_expression is not None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-serializable dict."""

        def iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "destination_id": self.destination_id,
            "message": self.message,
            "scheduled_for": iso(self.scheduled_for),
            "timezone": self.timezone,
            "status": self.status.value,
            "process_with_agent": self.process_with_agent,
            "cron_expression": self.cron_expression,
            "end_date": iso(self.end_date),
            "last_sent": iso(self.last_sent),
        }


@dataclass
class AgentResult:
    """Outcome of an agent invocation.

    ``text`` is None or empty when there is no usable response.
    ``limit_reached`` distinguishes a session/usage limit from ordinary
    empty output so the caller can notify the destination.
    """

    text: str | None = None
    session_token: str | None = None
    limit_reached: bool = False
    error: str | None = None

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())


@dataclass
class TickResult:
    """Summary of one scheduler tick."""

    started_at: datetime
    pending: int = 0
    due: int = 0
    fired: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: bool = False  # Another tick was still in progress
    error: str | None = None  # Tick-level failure (e.g. store query)


class ReminderRepository(Protocol):
    async def list_pending(self) -> list[Reminder]: ...

    async def mark_fired(self, reminder_id: str, fired_at: datetime) -> bool:
        """Record a successful fire; only applies while still pending.

        The store decides completion from the current row, not the copy
        read at the start of the tick.
        """
        ...


class SessionRepository(Protocol):
    async def get_session_token(self, destination_id: str) -> str | None: ...

    async def save_session_token(self, destination_id: str, token: str) -> None: ...


class AgentInvoker(Protocol):
    async def invoke(
        self,
        destination_id: str,
        prompt: str,
        session_token: str | None = None,
        *,
        timezone: str = DEFAULT_TIMEZONE,
    ) -> AgentResult: ...


class DeliveryAdapter(Protocol):
    async def deliver(self, destination_id: str, text: str) -> bool: ...
