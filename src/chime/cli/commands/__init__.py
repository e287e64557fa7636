"""CLI command modules."""

from chime.cli.commands import database, reminders, serve

__all__ = [
    "database",
    "reminders",
    "serve",
]
