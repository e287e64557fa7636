"""Per-reminder processing: build the outgoing text and deliver it."""

import asyncio
import logging
from datetime import datetime

from chime.scheduling.types import (
    AgentInvoker,
    AgentResult,
    DeliveryAdapter,
    Reminder,
    SessionRepository,
)

logger = logging.getLogger(__name__)

SPLIT_DELIMITER = "---SPLIT---"

REMINDER_TEMPLATE = "🔔 *Reminder*\n\n{message}"
SCHEDULED_UPDATE_TEMPLATE = "🔔 *Scheduled Update*\n\n{message}"
SESSION_LIMIT_TEMPLATE = (
    "⚠️ *Session Limit Reached*\n\n{message}\n\nPlease try again later."
)

DEFAULT_AGENT_TIMEOUT_SECONDS = 300.0
DEFAULT_DELIVERY_TIMEOUT_SECONDS = 30.0


def split_parts(text: str, delimiter: str = SPLIT_DELIMITER) -> list[str]:
    """Split agent output into messages on the delimiter, dropping empty parts."""
    return [part.strip() for part in text.split(delimiter) if part.strip()]


def _preview(text: str, max_len: int = 50) -> str:
    return text[:max_len] + "..." if len(text) > max_len else text


class ReminderProcessor:
    """Turns one due reminder into delivered messages.

    Processing steps:
    1. Literal reminders become a single framed message
    2. Agent reminders run the prompt through the agent (resuming the
       destination's session) and split the response into parts
    3. Parts are delivered in order, stopping at the first failure

    ``process`` reports whether every part was delivered; the caller owns
    the reminder state transition.
    """

    def __init__(
        self,
        delivery: DeliveryAdapter,
        agent: AgentInvoker | None = None,
        sessions: SessionRepository | None = None,
        *,
        agent_timeout: float = DEFAULT_AGENT_TIMEOUT_SECONDS,
        delivery_timeout: float = DEFAULT_DELIVERY_TIMEOUT_SECONDS,
    ):
        self._delivery = delivery
        self._agent = agent
        self._sessions = sessions
        self._agent_timeout = agent_timeout
        self._delivery_timeout = delivery_timeout

    async def process(self, reminder: Reminder, now: datetime) -> bool:
        """Process a due reminder.

        Returns:
            True if all parts were delivered; False leaves the reminder
            untouched so it is retried whole on a later tick.
        """
        logger.info(
            "reminder_processing",
            extra={
                "reminder.id": reminder.id,
                "reminder.message_preview": _preview(reminder.message),
                "reminder.recurring": reminder.is_recurring,
                "reminder.process_with_agent": reminder.process_with_agent,
                "messaging.chat_id": reminder.destination_id,
            },
        )

        if reminder.process_with_agent:
            parts = await self._agent_parts(reminder)
            if not parts:
                return False
        else:
            parts = [REMINDER_TEMPLATE.format(message=reminder.message)]

        for index, part in enumerate(parts, start=1):
            if not await self._deliver(reminder.destination_id, part):
                logger.warning(
                    "reminder_delivery_failed",
                    extra={
                        "reminder.id": reminder.id,
                        "messaging.chat_id": reminder.destination_id,
                        "delivery.part": index,
                        "delivery.parts": len(parts),
                    },
                )
                return False

        logger.info(
            "reminder_delivered",
            extra={
                "reminder.id": reminder.id,
                "messaging.chat_id": reminder.destination_id,
                "delivery.parts": len(parts),
                "schedule.fired_at": now.isoformat(),
            },
        )
        return True

    async def _agent_parts(self, reminder: Reminder) -> list[str]:
        if self._agent is None:
            logger.error(
                "reminder_agent_unavailable", extra={"reminder.id": reminder.id}
            )
            return []

        destination = reminder.destination_id
        existing = (
            await self._sessions.get_session_token(destination)
            if self._sessions
            else None
        )
        result = await self._invoke_agent(reminder, existing)

        token = result.session_token
        if token and token != existing and self._sessions:
            try:
                await self._sessions.save_session_token(destination, token)
            except Exception as e:
                logger.error(
                    "session_token_save_failed",
                    extra={"messaging.chat_id": destination, "error.message": str(e)},
                )

        if result.limit_reached:
            logger.warning(
                "agent_session_limit",
                extra={"reminder.id": reminder.id, "error.message": result.error},
            )
            await self._deliver(
                destination,
                SESSION_LIMIT_TEMPLATE.format(
                    message=result.error or "The assistant is temporarily unavailable."
                ),
            )
            return []

        if not result.has_text:
            logger.warning(
                "agent_empty_response",
                extra={
                    "reminder.id": reminder.id,
                    "messaging.chat_id": destination,
                    "error.message": result.error,
                },
            )
            return []

        assert result.text is not None
        parts = split_parts(result.text)
        if not parts:
            logger.warning(
                "agent_empty_response",
                extra={
                    "reminder.id": reminder.id,
                    "messaging.chat_id": destination,
                    "error.message": "Response had only split delimiters",
                },
            )
            return []
        parts[0] = SCHEDULED_UPDATE_TEMPLATE.format(message=parts[0])
        return parts

    async def _invoke_agent(
        self, reminder: Reminder, session_token: str | None
    ) -> AgentResult:
        assert self._agent is not None
        try:
            async with asyncio.timeout(self._agent_timeout):
                return await self._agent.invoke(
                    reminder.destination_id,
                    reminder.message,
                    session_token,
                    timezone=reminder.timezone,
                )
        except TimeoutError:
            return AgentResult(
                error=f"Agent timed out after {self._agent_timeout:.0f}s"
            )
        except Exception as e:
            logger.error(
                "agent_invocation_failed",
                extra={"reminder.id": reminder.id, "error.message": str(e)},
                exc_info=True,
            )
            return AgentResult(error=str(e))

    async def _deliver(self, destination_id: str, text: str) -> bool:
        try:
            async with asyncio.timeout(self._delivery_timeout):
                return await self._delivery.deliver(destination_id, text)
        except TimeoutError:
            logger.warning(
                "delivery_timeout",
                extra={
                    "messaging.chat_id": destination_id,
                    "delivery.timeout_s": self._delivery_timeout,
                },
            )
            return False
        except Exception as e:
            logger.error(
                "delivery_error",
                extra={"messaging.chat_id": destination_id, "error.message": str(e)},
            )
            return False
