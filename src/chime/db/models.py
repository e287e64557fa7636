"""SQLAlchemy ORM models.

Timestamps are stored as UTC. SQLite drops offsets on round-trip, so
readers normalize with ``chime.scheduling.timezones.ensure_utc``.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from chime.scheduling.timezones import DEFAULT_TIMEZONE, utc_now


class Base(DeclarativeBase):
    """Base class for all models."""


class Conversation(Base):
    """A chat destination and its resumable agent session."""

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String, primary_key=True)  # Chat ID
    session_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    reminders: Mapped[list["Reminder"]] = relationship(
        "Reminder", back_populates="conversation", cascade="all, delete-orphan"
    )


class AgentSession(Base):
    """Agent conversation history container, referenced by session token."""

    __tablename__ = "agent_sessions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    conversation_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    messages: Mapped[list["AgentMessage"]] = relationship(
        "AgentMessage", back_populates="session", cascade="all, delete-orphan"
    )


class AgentMessage(Base):
    """One turn in an agent session."""

    __tablename__ = "agent_messages"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    session_id: Mapped[str] = mapped_column(
        String, ForeignKey("agent_sessions.id"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False, index=True
    )

    session: Mapped["AgentSession"] = relationship(
        "AgentSession", back_populates="messages"
    )


class Reminder(Base):
    """Reminder record.

    One-time: cron_expression NULL, fires once at scheduled_for, then 'sent'.
    Recurring: cron_expression set, scheduled_for is the start bound, stays
    'pending' until cancelled; end_date closes the window.
    """

    __tablename__ = "reminders"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'sent', 'cancelled')", name="ck_reminders_status"
        ),
        Index("ix_reminders_status", "status"),
        Index("ix_reminders_conversation_status", "conversation_id", "status"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    conversation_id: Mapped[str] = mapped_column(
        String, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    scheduled_for: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    timezone: Mapped[str] = mapped_column(
        String, default=DEFAULT_TIMEZONE, nullable=False
    )
    status: Mapped[str] = mapped_column(String, default="pending", nullable=False)
    process_with_agent: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    cron_expression: Mapped[str | None] = mapped_column(Text, nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_sent: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    conversation: Mapped["Conversation"] = relationship(
        "Conversation", back_populates="reminders"
    )
