"""Configuration models using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, Field, SecretStr

from visionbot.vision.kakao import DEFAULT_BASE_URL, DEFAULT_POSE_URL


class ConfigError(Exception):
    """Configuration error."""

    pass


class TelegramConfig(BaseModel):
    """Configuration for the Telegram provider."""

    bot_token: SecretStr | None = None
    # Long-polling timeout for getUpdates
    poll_timeout_seconds: int = Field(default=10, ge=1)


class VisionConfig(BaseModel):
    """Configuration for the Kakao vision API."""

    api_key: SecretStr | None = None
    base_url: str = DEFAULT_BASE_URL
    pose_url: str = DEFAULT_POSE_URL
    face_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    product_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    pose_score_threshold: float = Field(default=0.0, ge=0.0, le=1.0)
    request_timeout_seconds: float = Field(default=60, gt=0)


class RenderConfig(BaseModel):
    """Configuration for annotated images.

    Without ``font_path`` Pillow's bundled font is used.
    """

    font_path: Path | None = None
    jpeg_quality: int = Field(default=90, ge=1, le=95)


class DispatchConfig(BaseModel):
    # 0 = unbounded
    max_concurrent_jobs: int = Field(default=8, ge=0)


class LoggingConfig(BaseModel):
    verbose: bool = False
    log_to_file: bool = False


class BotConfig(BaseModel):
    """Root configuration model."""

    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    vision: VisionConfig = Field(default_factory=VisionConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def telegram_token(self) -> str:
        """Get the bot token.

        Raises:
            ConfigError: If no token is configured.
        """
        if self.telegram.bot_token is None:
            raise ConfigError(
                "Telegram bot token is not set. "
                "Add [telegram] bot_token or set TELEGRAM_BOT_TOKEN"
            )
        return self.telegram.bot_token.get_secret_value()

    def vision_api_key(self) -> str:
        """Get the vision REST API key.

        Raises:
            ConfigError: If no key is configured.
        """
        if self.vision.api_key is None:
            raise ConfigError(
                "Kakao REST API key is not set. "
                "Add [vision] api_key or set KAKAO_REST_API_KEY"
            )
        return self.vision.api_key.get_secret_value()
