"""Configuration loading from TOML or JSON files and environment variables."""

import json
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import SecretStr

from visionbot.config.models import BotConfig
from visionbot.config.paths import get_config_path

# Flat keys of the legacy config.json, mapped onto (section, field).
# telegram-monitor-interval-seconds used to be the delay between update checks;
# it now sets the long-poll timeout, which bounds how long one check waits.
LEGACY_KEYS: dict[str, tuple[str, str]] = {
    "telegram-api-token": ("telegram", "bot_token"),
    "telegram-monitor-interval-seconds": ("telegram", "poll_timeout_seconds"),
    "kakao-rest-api-key": ("vision", "api_key"),
    "is-verbose": ("logging", "verbose"),
}

# Keys of the legacy config that are accepted and ignored
IGNORED_LEGACY_KEYS = frozenset({"loggly-token"})


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("config.toml"),  # Current directory
        Path("config.json"),  # Legacy location
        get_config_path(),  # ~/.visionbot/config.toml (or VISIONBOT_HOME)
    ]


def _set_secret_from_env(section: dict[str, Any], key: str, env_var: str) -> None:
    """Set a secret value from environment if not already set."""
    if section.get(key) is None:
        value = os.environ.get(env_var)
        if value:
            section[key] = SecretStr(value)


def _resolve_env_secrets(config: dict[str, Any]) -> dict[str, Any]:
    """Resolve secrets from environment variables where not set in config."""
    mappings = [
        ("telegram", "bot_token", "TELEGRAM_BOT_TOKEN"),
        ("vision", "api_key", "KAKAO_REST_API_KEY"),
    ]
    for section_key, secret_key, env_var in mappings:
        section = config.setdefault(section_key, {})
        _set_secret_from_env(section, secret_key, env_var)
    return config


def _apply_legacy_keys(config: dict[str, Any]) -> dict[str, Any]:
    """Move legacy flat keys into their sections.

    Values already present in a section win over legacy keys.
    """
    for legacy_key, (section_key, field) in LEGACY_KEYS.items():
        if legacy_key in config:
            value = config.pop(legacy_key)
            config.setdefault(section_key, {}).setdefault(field, value)
    for ignored in IGNORED_LEGACY_KEYS:
        config.pop(ignored, None)
    return config


def _read_file(config_path: Path) -> dict[str, Any]:
    if config_path.suffix == ".json":
        with config_path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Config root must be an object: {config_path}")
        return data
    with config_path.open("rb") as f:
        return tomllib.load(f)


def load_config(path: Path | None = None) -> BotConfig:
    """Load configuration from a TOML or JSON file.

    Args:
        path: Explicit path to config file. If None, searches default locations.

    Returns:
        Validated BotConfig instance.

    Raises:
        FileNotFoundError: If no config file is found.
        ValueError: If the config file cannot be parsed.
        pydantic.ValidationError: If config values are invalid.
    """
    config_path: Path | None = None

    default_paths = _get_default_config_paths()

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in default_paths:
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    if config_path is None:
        raise FileNotFoundError(
            f"No config file found. Searched: {', '.join(str(p) for p in default_paths)}"
        )

    raw_config = _apply_legacy_keys(_read_file(config_path))
    raw_config = _resolve_env_secrets(raw_config)

    return BotConfig.model_validate(raw_config)
