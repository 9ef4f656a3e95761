"""Main CLI application."""

import typer

from visionbot.cli.commands import analyze, serve

app = typer.Typer(
    name="visionbot",
    help="visionbot - Telegram bot for image analysis",
    no_args_is_help=True,
)

serve.register(app)
analyze.register(app)
