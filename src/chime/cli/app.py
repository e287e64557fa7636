"""Main CLI application."""

import typer

from chime.cli.commands import database, reminders, serve

app = typer.Typer(
    name="chime",
    help="Chime - scheduled reminders delivered to Telegram",
    no_args_is_help=True,
)

serve.register(app)
reminders.register(app)
database.register(app)


if __name__ == "__main__":
    app()
