"""Configuration module."""

from visionbot.config.loader import load_config
from visionbot.config.models import (
    BotConfig,
    ConfigError,
    DispatchConfig,
    LoggingConfig,
    RenderConfig,
    TelegramConfig,
    VisionConfig,
)
from visionbot.config.paths import (
    get_config_path,
    get_logs_path,
    get_visionbot_home,
)

__all__ = [
    "BotConfig",
    "ConfigError",
    "DispatchConfig",
    "LoggingConfig",
    "RenderConfig",
    "TelegramConfig",
    "VisionConfig",
    "get_config_path",
    "get_logs_path",
    "get_visionbot_home",
    "load_config",
]
