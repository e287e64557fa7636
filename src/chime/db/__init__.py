"""Database layer."""

from chime.db.engine import Database
from chime.db.models import (
    AgentMessage,
    AgentSession,
    Base,
    Conversation,
    Reminder,
)

__all__ = [
    # Engine
    "Database",
    # Models
    "AgentMessage",
    "AgentSession",
    "Base",
    "Conversation",
    "Reminder",
]
