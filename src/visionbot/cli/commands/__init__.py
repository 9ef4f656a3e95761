"""CLI command modules."""

from visionbot.cli.commands import analyze, serve

__all__ = [
    "analyze",
    "serve",
]
