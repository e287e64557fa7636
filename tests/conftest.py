"""Shared test fixtures and factories."""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from chime.config.models import ChimeConfig, DatabaseConfig
from chime.db.engine import Database
from chime.scheduling.types import AgentResult, Reminder, ReminderStatus
from chime.store import ConversationStore, ReminderStore

# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def config_toml_content() -> str:
    """Valid TOML config content."""
    return """
[scheduler]
interval_seconds = 60
default_timezone = "Europe/Madrid"

[telegram]
bot_token = "123456789:test-token"

[agent]
model = "claude-haiku-4-5"
max_tokens = 1024
"""


@pytest.fixture
def config_file(tmp_path: Path, config_toml_content: str) -> Path:
    """Create a temporary config file."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(config_toml_content)
    return config_path


@pytest.fixture
def cli_config(tmp_path: Path) -> Path:
    """Config file for CLI tests with a temporary database."""
    config_path = tmp_path / "cli.toml"
    config_path.write_text(f"""
[scheduler]
default_timezone = "UTC"

[telegram]
bot_token = "123456789:test-token"

[agent]
enabled = false

[database]
path = "{tmp_path / "cli.db"}"

[logging]
log_to_file = false
""")
    return config_path


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})


@pytest.fixture
def minimal_config(tmp_path: Path) -> ChimeConfig:
    """Configuration pointing at a temporary database."""
    return ChimeConfig(database=DatabaseConfig(path=tmp_path / "chime.db"))


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    """Create a temporary test database."""
    db = Database(database_path=tmp_path / "test.db")
    await db.connect()
    await db.create_tables()

    yield db

    await db.disconnect()


@pytest.fixture
def reminder_store(database: Database) -> ReminderStore:
    return ReminderStore(database)


@pytest.fixture
def conversation_store(database: Database) -> ConversationStore:
    return ConversationStore(database)


# =============================================================================
# Reminder Factories
# =============================================================================


def make_reminder(
    reminder_id: str = "r1",
    *,
    destination_id: str = "100",
    message: str = "Take a break",
    scheduled_for: datetime | None = None,
    timezone: str = "UTC",
    cron_expression: str | None = None,
    end_date: datetime | None = None,
    last_sent: datetime | None = None,
    process_with_agent: bool = False,
    status: ReminderStatus = ReminderStatus.PENDING,
) -> Reminder:
    """Build a Reminder with test defaults."""
    return Reminder(
        id=reminder_id,
        destination_id=destination_id,
        message=message,
        scheduled_for=scheduled_for or datetime(2025, 1, 1, tzinfo=UTC),
        timezone=timezone,
        status=status,
        process_with_agent=process_with_agent,
        cron_expression=cron_expression,
        end_date=end_date,
        last_sent=last_sent,
    )


# =============================================================================
# Collaborator Fakes
# =============================================================================


class FakeDelivery:
    """Records delivered messages; fails the listed call numbers (1-based)."""

    def __init__(self, fail_on: set[int] | None = None):
        self.sent: list[tuple[str, str]] = []
        self.calls = 0
        self._fail_on = fail_on or set()

    async def deliver(self, destination_id: str, text: str) -> bool:
        self.calls += 1
        if self.calls in self._fail_on:
            return False
        self.sent.append((destination_id, text))
        return True


class FakeAgent:
    """Returns canned results and records invocations."""

    def __init__(self, *results: AgentResult):
        self._results = list(results)
        self.invocations: list[dict[str, Any]] = []

    async def invoke(
        self,
        destination_id: str,
        prompt: str,
        session_token: str | None = None,
        *,
        timezone: str = "UTC",
    ) -> AgentResult:
        self.invocations.append(
            {
                "destination_id": destination_id,
                "prompt": prompt,
                "session_token": session_token,
                "timezone": timezone,
            }
        )
        if len(self._results) > 1:
            return self._results.pop(0)
        return self._results[0] if self._results else AgentResult()


class InMemorySessions:
    def __init__(self, tokens: dict[str, str] | None = None):
        self.tokens = dict(tokens or {})
        self.saved: list[tuple[str, str]] = []

    async def get_session_token(self, destination_id: str) -> str | None:
        return self.tokens.get(destination_id)

    async def save_session_token(self, destination_id: str, token: str) -> None:
        self.tokens[destination_id] = token
        self.saved.append((destination_id, token))


@pytest.fixture
def delivery() -> FakeDelivery:
    return FakeDelivery()
