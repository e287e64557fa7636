"""Configuration models using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, model_validator

from chime.config.paths import get_database_path
from chime.scheduling.timezones import DEFAULT_TIMEZONE, is_valid_timezone


class ConfigError(Exception):
    """Configuration error."""

    pass


class SchedulerConfig(BaseModel):
    """Configuration for the reminder scheduler loop."""

    interval_seconds: float = Field(default=60.0, gt=0)
    # Wake on interval boundaries (whole minutes at the default interval)
    align_to_minute: bool = True
    run_on_startup: bool = True
    # Timezone for reminders created without one
    default_timezone: str = DEFAULT_TIMEZONE
    agent_timeout_seconds: float = Field(default=300.0, gt=0)
    delivery_timeout_seconds: float = Field(default=30.0, gt=0)


class TelegramConfig(BaseModel):
    """Configuration for Telegram delivery."""

    bot_token: SecretStr | None = None
    parse_mode: str = "Markdown"


class ProviderConfig(BaseModel):
    """Provider-level configuration."""

    api_key: SecretStr | None = None


class AgentConfig(BaseModel):
    """Configuration for the agent that processes scheduled prompts."""

    enabled: bool = True
    model: str = "claude-sonnet-4-5"
    max_tokens: int = 4096
    # Messages of session history replayed per invocation
    history_limit: int = 40
    max_concurrent: int = 2
    max_retries: int = 3


class DatabaseConfig(BaseModel):
    """Database location. ``url`` wins over ``path`` when both are set."""

    url: str | None = None
    path: Path = Field(default_factory=get_database_path)


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None
    log_to_file: bool = True
    retention_days: int = 7


class ChimeConfig(BaseModel):
    """Root configuration model."""

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    telegram: TelegramConfig | None = None
    anthropic: ProviderConfig | None = None
    agent: AgentConfig = Field(default_factory=AgentConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def _validate_default_timezone(self) -> "ChimeConfig":
        """Reject an unknown default timezone at load time."""
        if not is_valid_timezone(self.scheduler.default_timezone):
            raise ValueError(
                f"Unknown timezone in [scheduler] default_timezone: "
                f"{self.scheduler.default_timezone!r}"
            )
        return self

    @property
    def telegram_token(self) -> str:
        """Get the Telegram bot token.

        Raises:
            ConfigError: If no token is configured.
        """
        if self.telegram is None or self.telegram.bot_token is None:
            raise ConfigError(
                "No Telegram bot token. Set [telegram] bot_token or TELEGRAM_BOT_TOKEN"
            )
        return self.telegram.bot_token.get_secret_value()

    @property
    def anthropic_api_key(self) -> str | None:
        if self.anthropic and self.anthropic.api_key:
            return self.anthropic.api_key.get_secret_value()
        return None
