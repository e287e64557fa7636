"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import SecretStr, ValidationError

from chime.config.models import ChimeConfig, ConfigError
from chime.config.paths import get_config_path


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("config.toml"),  # Current directory
        get_config_path(),  # ~/.chime/config.toml (or CHIME_HOME)
        Path("/etc/chime/config.toml"),  # System-wide
    ]


def _set_secret_from_env(section: dict[str, Any], key: str, env_var: str) -> None:
    """Set a secret value from environment if not already set."""
    if section.get(key) is None:
        value = os.environ.get(env_var)
        if value:
            section[key] = SecretStr(value)


def _resolve_env(config: dict[str, Any]) -> dict[str, Any]:
    """Fill secrets and overrides from environment variables."""
    secret_mappings = [
        ("telegram", "bot_token", "TELEGRAM_BOT_TOKEN"),
        ("anthropic", "api_key", "ANTHROPIC_API_KEY"),
    ]
    for section_key, secret_key, env_var in secret_mappings:
        section = config.get(section_key)
        if section is None:
            if not os.environ.get(env_var):
                continue
            section = config[section_key] = {}
        _set_secret_from_env(section, secret_key, env_var)

    if database_url := os.environ.get("DATABASE_URL"):
        config.setdefault("database", {})["url"] = database_url

    return config


def load_config(path: Path | None = None) -> ChimeConfig:
    """Load configuration from TOML file.

    Args:
        path: Explicit path to config file. If None, searches default locations.

    Returns:
        Validated ChimeConfig instance.

    Raises:
        FileNotFoundError: If no config file is found.
        ConfigError: If the config file is invalid.
    """
    config_path: Path | None = None

    default_paths = _get_default_config_paths()

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in default_paths:
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    if config_path is None:
        searched = ", ".join(str(p) for p in default_paths)
        raise FileNotFoundError(f"No config file found. Searched: {searched}")

    try:
        with config_path.open("rb") as f:
            raw_config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    raw_config = _resolve_env(raw_config)

    try:
        return ChimeConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}:\n{e}") from e


def get_default_config() -> ChimeConfig:
    """Get a default configuration for development/testing.

    Secrets and DATABASE_URL are still read from the environment.
    """
    return ChimeConfig.model_validate(_resolve_env({}))
