"""Tests for per-reminder processing and delivery."""

import asyncio
import logging
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from chime.scheduling.handler import (
    REMINDER_TEMPLATE,
    SCHEDULED_UPDATE_TEMPLATE,
    ReminderProcessor,
    split_parts,
)
from chime.scheduling.types import AgentResult
from tests.conftest import FakeAgent, FakeDelivery, InMemorySessions, make_reminder

NOW = datetime(2025, 1, 15, 13, 0, tzinfo=UTC)


class TestSplitParts:
    """Tests for multi-part splitting."""

    def test_single_part(self):
        assert split_parts("Hello") == ["Hello"]

    def test_splits_and_trims(self):
        """Test parts are trimmed and empty parts dropped."""
        text = "First\n---SPLIT---\n  Second  \n---SPLIT---\n\n---SPLIT---Third"
        assert split_parts(text) == ["First", "Second", "Third"]

    def test_only_delimiters(self):
        assert split_parts("---SPLIT------SPLIT---") == []


class TestLiteralReminders:
    """Tests for reminders delivered as literal text."""

    async def test_delivers_framed_message(self, delivery: FakeDelivery):
        """Test the literal message is wrapped in the reminder template."""
        processor = ReminderProcessor(delivery)
        reminder = make_reminder(message="Stand up and stretch")

        assert await processor.process(reminder, NOW)
        assert delivery.sent == [
            ("100", REMINDER_TEMPLATE.format(message="Stand up and stretch"))
        ]
        assert delivery.sent[0][1] == "🔔 *Reminder*\n\nStand up and stretch"

    async def test_literal_text_is_not_split(self, delivery: FakeDelivery):
        """Test the split delimiter only applies to agent output."""
        processor = ReminderProcessor(delivery)
        reminder = make_reminder(message="a ---SPLIT--- b")

        assert await processor.process(reminder, NOW)
        assert len(delivery.sent) == 1

    async def test_delivery_failure(self):
        """Test a rejected delivery reports failure."""
        processor = ReminderProcessor(FakeDelivery(fail_on={1}))
        assert not await processor.process(make_reminder(), NOW)

    async def test_delivery_exception_is_failure(self):
        """Test an adapter exception is contained and reported as failure."""
        delivery = AsyncMock()
        delivery.deliver.side_effect = ConnectionError("network down")
        processor = ReminderProcessor(delivery)

        assert not await processor.process(make_reminder(), NOW)

    async def test_delivery_timeout_is_failure(self):
        """Test a hung delivery is bounded by the timeout."""

        class HangingDelivery:
            async def deliver(self, destination_id: str, text: str) -> bool:
                await asyncio.sleep(10)
                return True

        processor = ReminderProcessor(HangingDelivery(), delivery_timeout=0.01)
        assert not await processor.process(make_reminder(), NOW)


class TestAgentReminders:
    """Tests for reminders processed through the agent."""

    async def test_agent_parts_delivered_in_order(self, delivery: FakeDelivery):
        """Test split agent output is delivered part by part, first one framed."""
        agent = FakeAgent(AgentResult(text="Headline\n---SPLIT---\nDetails"))
        processor = ReminderProcessor(delivery, agent)
        reminder = make_reminder(message="Summarize news", process_with_agent=True)

        assert await processor.process(reminder, NOW)
        assert [text for _, text in delivery.sent] == [
            SCHEDULED_UPDATE_TEMPLATE.format(message="Headline"),
            "Details",
        ]
        assert agent.invocations[0]["prompt"] == "Summarize news"

    async def test_passes_reminder_timezone(self, delivery: FakeDelivery):
        """Test the agent receives the reminder's timezone."""
        agent = FakeAgent(AgentResult(text="ok"))
        processor = ReminderProcessor(delivery, agent)
        reminder = make_reminder(process_with_agent=True, timezone="Europe/Madrid")

        await processor.process(reminder, NOW)
        assert agent.invocations[0]["timezone"] == "Europe/Madrid"

    async def test_stops_at_first_failed_part(self):
        """Test later parts are not sent once an earlier part fails."""
        delivery = FakeDelivery(fail_on={2})
        agent = FakeAgent(AgentResult(text="one---SPLIT---two---SPLIT---three"))
        processor = ReminderProcessor(delivery, agent)

        assert not await processor.process(
            make_reminder(process_with_agent=True), NOW
        )
        assert delivery.calls == 2
        assert len(delivery.sent) == 1

    async def test_empty_response_is_not_delivered(self, delivery: FakeDelivery):
        """Test empty agent output delivers nothing and reports failure."""
        processor = ReminderProcessor(delivery, FakeAgent(AgentResult(text="  ")))

        assert not await processor.process(
            make_reminder(process_with_agent=True), NOW
        )
        assert delivery.sent == []

    async def test_delimiter_only_response_is_logged(
        self, delivery: FakeDelivery, caplog: pytest.LogCaptureFixture
    ):
        """Test output made only of split delimiters is reported as empty."""
        agent = FakeAgent(AgentResult(text="---SPLIT---\n---SPLIT---"))
        processor = ReminderProcessor(delivery, agent)

        with caplog.at_level(logging.WARNING, logger="chime.scheduling.handler"):
            delivered = await processor.process(
                make_reminder(process_with_agent=True), NOW
            )

        assert not delivered
        assert delivery.sent == []
        assert "agent_empty_response" in [r.getMessage() for r in caplog.records]

    async def test_error_result_is_not_delivered(self, delivery: FakeDelivery):
        """Test an agent error delivers nothing and reports failure."""
        agent = FakeAgent(AgentResult(error="API unavailable"))
        processor = ReminderProcessor(delivery, agent)

        assert not await processor.process(
            make_reminder(process_with_agent=True), NOW
        )
        assert delivery.sent == []

    async def test_session_limit_notifies_destination(self, delivery: FakeDelivery):
        """Test a session limit sends the notice and still reports failure."""
        agent = FakeAgent(
            AgentResult(limit_reached=True, error="Usage limit reached")
        )
        processor = ReminderProcessor(delivery, agent)

        assert not await processor.process(
            make_reminder(process_with_agent=True), NOW
        )
        assert delivery.sent == [
            (
                "100",
                "⚠️ *Session Limit Reached*\n\nUsage limit reached\n\n"
                "Please try again later.",
            )
        ]

    async def test_agent_exception_is_contained(self, delivery: FakeDelivery):
        """Test an agent exception is reported as failure, not raised."""
        agent = AsyncMock()
        agent.invoke.side_effect = RuntimeError("boom")
        processor = ReminderProcessor(delivery, agent)

        assert not await processor.process(
            make_reminder(process_with_agent=True), NOW
        )
        assert delivery.sent == []

    async def test_agent_timeout_is_failure(self, delivery: FakeDelivery):
        """Test a hung agent is bounded by the timeout."""

        class HangingAgent:
            async def invoke(self, *args, **kwargs) -> AgentResult:
                await asyncio.sleep(10)
                return AgentResult(text="late")

        processor = ReminderProcessor(delivery, HangingAgent(), agent_timeout=0.01)
        assert not await processor.process(
            make_reminder(process_with_agent=True), NOW
        )
        assert delivery.sent == []

    async def test_without_agent_configured(self, delivery: FakeDelivery):
        """Test agent reminders fail cleanly when no agent is configured."""
        processor = ReminderProcessor(delivery)
        assert not await processor.process(
            make_reminder(process_with_agent=True), NOW
        )


class TestSessionTokens:
    """Tests for session token resume and persistence."""

    async def test_supplies_existing_token(self, delivery: FakeDelivery):
        """Test the destination's stored token is passed to the agent."""
        sessions = InMemorySessions({"100": "session_a"})
        agent = FakeAgent(AgentResult(text="ok", session_token="session_a"))
        processor = ReminderProcessor(delivery, agent, sessions)

        await processor.process(make_reminder(process_with_agent=True), NOW)

        assert agent.invocations[0]["session_token"] == "session_a"
        assert sessions.saved == []  # unchanged token is not re-saved

    async def test_saves_new_token(self, delivery: FakeDelivery):
        """Test a changed token is persisted for the destination."""
        sessions = InMemorySessions({"100": "session_a"})
        agent = FakeAgent(AgentResult(text="ok", session_token="session_b"))
        processor = ReminderProcessor(delivery, agent, sessions)

        await processor.process(make_reminder(process_with_agent=True), NOW)

        assert sessions.saved == [("100", "session_b")]

    async def test_saves_token_even_without_text(self, delivery: FakeDelivery):
        """Test a new session is kept even if the response is unusable."""
        sessions = InMemorySessions()
        agent = FakeAgent(AgentResult(text="", session_token="session_new"))
        processor = ReminderProcessor(delivery, agent, sessions)

        assert not await processor.process(
            make_reminder(process_with_agent=True), NOW
        )
        assert sessions.tokens == {"100": "session_new"}

    async def test_token_save_failure_does_not_block_delivery(
        self, delivery: FakeDelivery
    ):
        """Test a failing session store does not prevent delivery."""
        sessions = AsyncMock()
        sessions.get_session_token.return_value = None
        sessions.save_session_token.side_effect = RuntimeError("db locked")
        agent = FakeAgent(AgentResult(text="ok", session_token="session_x"))
        processor = ReminderProcessor(delivery, agent, sessions)

        assert await processor.process(make_reminder(process_with_agent=True), NOW)
        assert len(delivery.sent) == 1
