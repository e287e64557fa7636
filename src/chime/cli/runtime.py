"""Shared runtime bootstrap helpers for CLI entrypoints."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from chime.config import ChimeConfig, get_default_config, load_config
from chime.db import Database
from chime.scheduling import ReminderProcessor, ReminderScheduler
from chime.store import ConversationStore, ReminderStore

logger = logging.getLogger(__name__)


def resolve_config(config_path: Path | None) -> ChimeConfig:
    """Load config from ``config_path`` or the default locations.

    Falls back to defaults (plus environment secrets) when no file exists
    and no explicit path was given.
    """
    try:
        return load_config(config_path)
    except FileNotFoundError:
        if config_path is not None:
            raise
        logger.debug("No config file found, using defaults")
        return get_default_config()


def create_database(config: ChimeConfig) -> Database:
    if config.database.url:
        return Database(database_url=config.database.url)
    return Database(database_path=config.database.path)


@asynccontextmanager
async def open_database(
    config: ChimeConfig, *, migrate: bool = True
) -> AsyncIterator[Database]:
    """Connect to the configured database for the duration of the block.

    The schema is upgraded to the latest alembic revision first unless
    ``migrate`` is False.
    """
    database = create_database(config)
    await database.connect()
    try:
        if migrate:
            await database.migrate()
        yield database
    finally:
        await database.disconnect()


@dataclass(slots=True)
class SchedulerRuntime:
    """Composed scheduler dependencies for CLI command handlers."""

    scheduler: ReminderScheduler
    store: ReminderStore
    closers: list[Any] = field(default_factory=list)

    async def close(self) -> None:
        for resource in self.closers:
            try:
                await resource.close()
            except Exception as e:
                logger.warning(f"Error during close: {e}")


def build_scheduler(config: ChimeConfig, database: Database) -> SchedulerRuntime:
    """Wire stores, agent, delivery and the scheduler from config.

    Raises:
        ConfigError: If no Telegram bot token is configured.
    """
    from chime.llm import AnthropicAgent, RetryConfig
    from chime.providers import TelegramDelivery

    store = ReminderStore(database)
    conversations = ConversationStore(database)

    telegram = config.telegram
    delivery = TelegramDelivery(
        config.telegram_token,
        parse_mode=telegram.parse_mode if telegram else "markdown",
    )

    agent = None
    if config.agent.enabled and config.anthropic_api_key:
        agent = AnthropicAgent(
            database,
            api_key=config.anthropic_api_key,
            model=config.agent.model,
            max_tokens=config.agent.max_tokens,
            history_limit=config.agent.history_limit,
            max_concurrent=config.agent.max_concurrent,
            retry=RetryConfig(max_retries=config.agent.max_retries),
        )
    elif config.agent.enabled:
        logger.warning(
            "agent_disabled_no_api_key",
            extra={"config.hint": "set [anthropic] api_key or ANTHROPIC_API_KEY"},
        )

    processor = ReminderProcessor(
        delivery,
        agent,
        conversations,
        agent_timeout=config.scheduler.agent_timeout_seconds,
        delivery_timeout=config.scheduler.delivery_timeout_seconds,
    )
    scheduler = ReminderScheduler(
        store,
        processor,
        interval=config.scheduler.interval_seconds,
        align_to_interval=config.scheduler.align_to_minute,
        run_on_startup=config.scheduler.run_on_startup,
    )
    return SchedulerRuntime(scheduler=scheduler, store=store, closers=[delivery])
