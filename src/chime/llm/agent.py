"""Anthropic-backed agent used to process scheduled prompts.

A session token identifies an ``agent_sessions`` row whose messages are
replayed as conversation history, so scheduled prompts continue the same
conversation the user has with the bot.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta

import anthropic
from sqlalchemy import select

from chime.db.engine import Database
from chime.db.models import AgentMessage, AgentSession
from chime.llm.retry import RetryConfig, is_limit_error, with_retry
from chime.scheduling.timezones import (
    DEFAULT_TIMEZONE,
    InvalidTimezone,
    get_zone,
    utc_now,
)
from chime.scheduling.types import AgentResult

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5"

SCHEDULER_SYSTEM_PROMPT = """\
You are a helpful personal assistant processing a scheduled reminder request.

CURRENT CONVERSATION:
- Conversation ID: {conversation_id}

CURRENT DATE AND TIME:
- Current date: {current_date}
- Current time: {current_time}
- ISO format: {current_iso}

SCHEDULER CONTEXT:
This is an automated reminder that was scheduled by the user. Process the \
request and provide a clear, concise response.

IMPORTANT: Keep responses concise and focused. This is a scheduled reminder, \
so get straight to the point.

To send several separate messages, put ---SPLIT--- on its own line between \
them. Never split inside a code block or other formatting."""


def build_system_prompt(
    conversation_id: str, timezone: str, now: datetime | None = None
) -> str:
    """Render the scheduler system prompt with the current time in ``timezone``."""
    try:
        tz = get_zone(timezone)
    except InvalidTimezone:
        tz = get_zone(DEFAULT_TIMEZONE)
    local = (now or utc_now()).astimezone(tz)
    return SCHEDULER_SYSTEM_PROMPT.format(
        conversation_id=conversation_id,
        current_date=local.strftime("%A, %B %d, %Y"),
        current_time=local.strftime("%H:%M %Z"),
        current_iso=local.isoformat(timespec="seconds"),
    )


class AnthropicAgent:
    """Runs prompts through Claude with per-destination session history."""

    def __init__(
        self,
        database: Database,
        *,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        history_limit: int = 40,
        max_concurrent: int = 2,
        retry: RetryConfig | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        self._db = database
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model
        self._max_tokens = max_tokens
        self._history_limit = history_limit
        self._retry = retry or RetryConfig(enabled=True, max_retries=3)
        self._semaphore = asyncio.Semaphore(max_concurrent)

    async def invoke(
        self,
        destination_id: str,
        prompt: str,
        session_token: str | None = None,
        *,
        timezone: str = DEFAULT_TIMEZONE,
    ) -> AgentResult:
        """Run ``prompt`` for a destination, resuming ``session_token`` if known.

        Returns an AgentResult; usage limits set ``limit_reached`` and other
        API failures set ``error`` with no text.
        """
        logger.info(
            "agent_invoking",
            extra={
                "messaging.chat_id": destination_id,
                "agent.session_id": session_token,
                "agent.prompt_preview": prompt[:100],
            },
        )

        session_id, history = await self._load_history(destination_id, session_token)
        messages = [*history, {"role": "user", "content": prompt}]
        system = build_system_prompt(destination_id, timezone)

        semaphore = self._semaphore

        async def _make_request() -> anthropic.types.Message:
            async with semaphore:
                logger.debug(f"Acquired API slot, calling {self._model}")
                return await self._client.messages.create(
                    model=self._model,
                    max_tokens=self._max_tokens,
                    system=system,
                    messages=messages,
                )

        try:
            response = await with_retry(
                _make_request,
                config=self._retry,
                operation_name=f"Anthropic {self._model}",
            )
        except anthropic.APIError as e:
            if is_limit_error(e):
                return AgentResult(
                    session_token=session_token, limit_reached=True, error=str(e)
                )
            logger.error(
                "agent_api_error",
                extra={"messaging.chat_id": destination_id, "error.message": str(e)},
            )
            return AgentResult(session_token=session_token, error=str(e))

        text = "".join(
            block.text for block in response.content if block.type == "text"
        ).strip()
        logger.debug(
            f"Agent response: {response.usage.input_tokens}in/"
            f"{response.usage.output_tokens}out tokens, {len(text)} chars"
        )

        if not text:
            # Nothing was stored under session_id; keep the caller's token
            return AgentResult(session_token=session_token)

        await self._append(session_id, destination_id, prompt, text)
        return AgentResult(text=text, session_token=session_id)

    async def _load_history(
        self, destination_id: str, session_token: str | None
    ) -> tuple[str, list[dict[str, str]]]:
        if session_token:
            async with self._db.session() as session:
                agent_session = await session.get(AgentSession, session_token)
                if (
                    agent_session is not None
                    and agent_session.conversation_id == destination_id
                ):
                    result = await session.execute(
                        select(AgentMessage)
                        .where(AgentMessage.session_id == session_token)
                        .order_by(AgentMessage.created_at.desc())
                        .limit(self._history_limit)
                    )
                    rows = list(reversed(result.scalars().all()))
                    history = [{"role": m.role, "content": m.content} for m in rows]
                    # History must open with a user turn
                    while history and history[0]["role"] != "user":
                        history.pop(0)
                    return session_token, history
            logger.info(
                "agent_session_not_found",
                extra={"agent.session_id": session_token},
            )
        return f"session_{uuid.uuid4().hex}", []

    async def _append(
        self, session_id: str, destination_id: str, prompt: str, text: str
    ) -> None:
        now = utc_now()
        # History is ordered by created_at; the reply must sort after the prompt
        replied_at = now + timedelta(microseconds=1)
        async with self._db.session() as session:
            agent_session = await session.get(AgentSession, session_id)
            if agent_session is None:
                session.add(AgentSession(id=session_id, conversation_id=destination_id))
            else:
                agent_session.updated_at = now
            session.add_all(
                [
                    AgentMessage(
                        id=uuid.uuid4().hex,
                        session_id=session_id,
                        role="user",
                        content=prompt,
                        created_at=now,
                    ),
                    AgentMessage(
                        id=uuid.uuid4().hex,
                        session_id=session_id,
                        role="assistant",
                        content=text,
                        created_at=replied_at,
                    ),
                ]
            )
