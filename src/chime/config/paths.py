"""Centralized path management for Chime.

All state (config, database, logs) is stored under a single base directory.
The base directory can be overridden with the CHIME_HOME environment variable.

Default locations:
- Linux/macOS: ~/.chime
- Windows: %USERPROFILE%\\.chime
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "CHIME_HOME"


@lru_cache(maxsize=1)
def get_chime_home() -> Path:
    """Get the base directory for all Chime data.

    Resolution order:
    1. CHIME_HOME environment variable (if set)
    2. Platform default (~/.chime)
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".chime"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_chime_home() / "config.toml"


def get_database_path() -> Path:
    """Get the default SQLite database path."""
    return get_chime_home() / "data" / "chime.db"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_chime_home() / "logs"


def get_all_paths() -> dict[str, Path]:
    """Get all standard paths for display."""
    return {
        "home": get_chime_home(),
        "config": get_config_path(),
        "database": get_database_path(),
        "logs": get_logs_path(),
    }
