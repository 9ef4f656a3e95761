"""Tests for configuration loading and models."""

import json

import pytest
from pydantic import SecretStr, ValidationError

from visionbot.config.loader import (
    _apply_legacy_keys,
    _resolve_env_secrets,
    load_config,
)
from visionbot.config.models import (
    BotConfig,
    ConfigError,
    DispatchConfig,
    TelegramConfig,
    VisionConfig,
)
from visionbot.vision.kakao import DEFAULT_BASE_URL, DEFAULT_POSE_URL


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    monkeypatch.delenv("KAKAO_REST_API_KEY", raising=False)


class TestModels:
    """Tests for config model defaults and validation."""

    def test_telegram_defaults(self):
        config = TelegramConfig()
        assert config.bot_token is None
        assert config.poll_timeout_seconds == 10

    def test_vision_defaults(self):
        config = VisionConfig()
        assert config.base_url == DEFAULT_BASE_URL
        assert config.pose_url == DEFAULT_POSE_URL
        assert config.face_threshold == 0.7
        assert config.product_threshold == 0.7

    def test_dispatch_defaults(self):
        assert DispatchConfig().max_concurrent_jobs == 8

    def test_threshold_out_of_range(self):
        with pytest.raises(ValidationError):
            VisionConfig(face_threshold=1.5)

    def test_missing_token_raises(self):
        with pytest.raises(ConfigError, match="TELEGRAM_BOT_TOKEN"):
            BotConfig().telegram_token()

    def test_missing_api_key_raises(self):
        with pytest.raises(ConfigError, match="KAKAO_REST_API_KEY"):
            BotConfig().vision_api_key()

    def test_secrets_returned(self):
        config = BotConfig(
            telegram=TelegramConfig(bot_token=SecretStr("123:abc")),
            vision=VisionConfig(api_key=SecretStr("kakao")),
        )
        assert config.telegram_token() == "123:abc"
        assert config.vision_api_key() == "kakao"


class TestLoadConfig:
    """Tests for config file loading."""

    def test_load_toml(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            """
[telegram]
bot_token = "123:abc"
poll_timeout_seconds = 30

[vision]
api_key = "kakao-key"
face_threshold = 0.5

[dispatch]
max_concurrent_jobs = 2
"""
        )
        config = load_config(path)
        assert config.telegram_token() == "123:abc"
        assert config.telegram.poll_timeout_seconds == 30
        assert config.vision.face_threshold == 0.5
        assert config.dispatch.max_concurrent_jobs == 2

    def test_load_legacy_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "telegram-api-token": "123:abc",
                    "telegram-monitor-interval-seconds": 3,
                    "kakao-rest-api-key": "kakao-key",
                    "loggly-token": "ignored",
                    "is-verbose": True,
                }
            )
        )
        config = load_config(path)
        assert config.telegram_token() == "123:abc"
        assert config.telegram.poll_timeout_seconds == 3
        assert config.vision_api_key() == "kakao-key"
        assert config.logging.verbose is True

    def test_env_fallback(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "999:env")
        monkeypatch.setenv("KAKAO_REST_API_KEY", "env-key")
        path = tmp_path / "config.toml"
        path.write_text("")
        config = load_config(path)
        assert config.telegram_token() == "999:env"
        assert config.vision_api_key() == "env-key"

    def test_file_value_wins_over_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("KAKAO_REST_API_KEY", "env-key")
        path = tmp_path / "config.toml"
        path.write_text('[vision]\napi_key = "file-key"\n')
        assert load_config(path).vision_api_key() == "file-key"

    def test_file_not_found(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.toml")

    def test_invalid_toml(self, tmp_path):
        import tomllib

        invalid_file = tmp_path / "invalid.toml"
        invalid_file.write_text("this is not valid toml [[[")
        with pytest.raises(tomllib.TOMLDecodeError):
            load_config(invalid_file)

    def test_invalid_json_root(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError):
            load_config(path)

    def test_invalid_config_values(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[telegram]\npoll_timeout_seconds = 0\n")
        with pytest.raises(ValidationError):
            load_config(path)


class TestHelpers:
    def test_legacy_keys_do_not_override_sections(self):
        raw = {"telegram": {"bot_token": "new"}, "telegram-api-token": "old"}
        assert _apply_legacy_keys(raw) == {"telegram": {"bot_token": "new"}}

    def test_env_secrets_create_sections(self, monkeypatch):
        monkeypatch.setenv("KAKAO_REST_API_KEY", "env-key")
        resolved = _resolve_env_secrets({})
        assert resolved["vision"]["api_key"].get_secret_value() == "env-key"
        assert "bot_token" not in resolved["telegram"]
