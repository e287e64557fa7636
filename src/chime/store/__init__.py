"""Persistent stores for reminders and conversations.

Public API:
- ReminderStore: Reminder CRUD, pending query, conditional fire transition
- ConversationStore: Resumable agent session token per destination

Errors:
- ReminderNotFound: Edit/cancel target does not exist for the destination
"""

from chime.store.conversations import ConversationStore
from chime.store.mappers import row_to_reminder
from chime.store.reminders import UNSET, ReminderNotFound, ReminderStore

__all__ = [
    "ConversationStore",
    "ReminderNotFound",
    "ReminderStore",
    "UNSET",
    "row_to_reminder",
]
