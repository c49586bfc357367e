"""Configuration loading utilities."""

import json
import os
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from polychat.config.schema import Config

API_KEY_ENV = "POLYCHAT_AI_API_KEY"


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".polychat" / "config.json"


def get_data_dir() -> Path:
    """Get the polychat data directory."""
    from polychat.utils.helpers import get_data_path
    return get_data_path()


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()

    config = Config()
    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            config = Config.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Failed to load config from {}: {}", path, e)
            logger.warning("Using default configuration.")

    if env_key := os.environ.get(API_KEY_ENV):
        config.ai.api_key = env_key
    return config


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(by_alias=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
