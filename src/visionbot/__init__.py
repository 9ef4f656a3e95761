"""visionbot - Telegram bot relaying images to the Kakao Vision API."""

__version__ = "0.1.0"
