"""Centralized path management for visionbot.

State (config, logs) lives under a single base directory, which can be
overridden with the VISIONBOT_HOME environment variable.

Default location: ~/.visionbot
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "VISIONBOT_HOME"


@lru_cache(maxsize=1)
def get_visionbot_home() -> Path:
    """Get the base directory for all visionbot data.

    Resolution order:
    1. VISIONBOT_HOME environment variable (if set)
    2. ~/.visionbot
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".visionbot"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_visionbot_home() / "config.toml"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_visionbot_home() / "logs"
