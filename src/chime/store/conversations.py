"""Conversation records and their resumable agent session tokens."""

import logging

from sqlalchemy import update

from chime.db.engine import Database
from chime.db.models import Conversation
from chime.scheduling.timezones import utc_now

logger = logging.getLogger(__name__)


class ConversationStore:
    """Session token per destination, backed by the ``conversations`` table.

    The database is authoritative. The optional process-local cache is only
    filled after a successful read or committed write, and is dropped on
    clear. Leave it off when another process also writes session tokens.
    """

    def __init__(self, database: Database, *, use_cache: bool = False) -> None:
        self._db = database
        self._use_cache = use_cache
        self._cache: dict[str, str] = {}

    async def get_session_token(self, destination_id: str) -> str | None:
        if self._use_cache and destination_id in self._cache:
            return self._cache[destination_id]

        async with self._db.session() as session:
            conversation = await session.get(Conversation, destination_id)
            token = conversation.session_id if conversation else None

        if token and self._use_cache:
            self._cache[destination_id] = token
            logger.debug(f"Loaded session {token} for conversation {destination_id}")
        return token

    async def save_session_token(self, destination_id: str, token: str) -> None:
        async with self._db.session() as session:
            conversation = await session.get(Conversation, destination_id)
            if conversation is None:
                session.add(Conversation(id=destination_id, session_id=token))
            else:
                conversation.session_id = token
                conversation.updated_at = utc_now()

        if self._use_cache:
            self._cache[destination_id] = token
        logger.info(
            "conversation_session_saved",
            extra={"messaging.chat_id": destination_id, "agent.session_id": token},
        )

    async def clear_session_token(self, destination_id: str) -> bool:
        """Forget the session for a destination.

        Returns:
            True if a session token was stored.
        """
        self._cache.pop(destination_id, None)
        async with self._db.session() as session:
            result = await session.execute(
                update(Conversation)
                .where(
                    Conversation.id == destination_id,
                    Conversation.session_id.is_not(None),
                )
                .values(session_id=None, updated_at=utc_now())
            )
            cleared = result.rowcount == 1

        logger.info(
            "conversation_session_cleared",
            extra={"messaging.chat_id": destination_id, "cleared": cleared},
        )
        return cleared

    def invalidate(self, destination_id: str | None = None) -> None:
        """Drop cached tokens (all destinations when ``destination_id`` is None)."""
        if destination_id is None:
            self._cache.clear()
        else:
            self._cache.pop(destination_id, None)
