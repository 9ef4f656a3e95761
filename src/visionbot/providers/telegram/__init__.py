"""Telegram provider."""

from visionbot.providers.telegram.provider import TelegramProvider

__all__ = [
    "TelegramProvider",
]
