"""Chat transport providers."""

from visionbot.providers.base import (
    DeliveryError,
    ImageAttachment,
    IncomingCallback,
    IncomingMessage,
    InlineButton,
    Provider,
)
from visionbot.providers.telegram import TelegramProvider

__all__ = [
    # Base
    "DeliveryError",
    "ImageAttachment",
    "IncomingCallback",
    "IncomingMessage",
    "InlineButton",
    "Provider",
    # Telegram
    "TelegramProvider",
]
