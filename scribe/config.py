"""
Configuration management with three-tier precedence system:
1. Default values from codebase
2. Environment variables from .env
3. Explicit overrides (CLI flags, upload options)

Precedence: Override > Environment Variables > Defaults
"""

import logging
import os
from typing import Any, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class ConfigManager:
    """Manages configuration with three-tier precedence."""

    # Default values (Tier 1 - Codebase defaults)
    DEFAULTS = {
        "API_BASE_URL": "http://localhost:5001",
        "LLM_API_BASE_URL": "https://api.openai.com/v1",
        "LLM_MODEL": "gpt-4",
        "TRANSCRIPTION_MODEL": "whisper-1",
        "OPENAI_API_KEY": "",
        "OPENAI_MAX_RETRIES": 2,
        "OUTPUT_DIR": "./.output",
        "SILENCE_THRESHOLD": 0.02,
        "SILENCE_WINDOW_SECONDS": 1.0,
        "EMIT_INTERVAL_SECONDS": 30,
        "FRAMES_PER_BUFFER": 1920,
        "CLIP_QUEUE_SIZE": 8,
        "CLIP_QUEUE_POLICY": "block",
        "PAYLOAD_SIZE_LIMIT": 25 * 1024 * 1024,  # Whisper upload limit
        "SEGMENT_BITRATE_KBPS": 64,
        "SPLITTER_MAX_WORKERS": 4,
        "PROMPT_TOKEN_LIMIT": 225,  # Whisper prompt ceiling
        "LOG_LEVEL": "INFO",
    }

    @staticmethod
    def get(key: str, override: Optional[Any] = None) -> Any:
        """
        Get configuration value with three-tier precedence.

        Args:
            key: Configuration key
            override: Explicit value (highest priority)

        Returns:
            Configuration value from highest priority source
        """
        value, _ = ConfigManager.get_display_value(key, override)
        return value

    @staticmethod
    def get_int(key: str, override: Optional[Any] = None) -> int:
        """Get a configuration value as an integer."""
        value = ConfigManager.get(key, override)
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"Configuration {key} must be an integer, got {value!r}")

    @staticmethod
    def get_float(key: str, override: Optional[Any] = None) -> float:
        """Get a configuration value as a float."""
        value = ConfigManager.get(key, override)
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValueError(f"Configuration {key} must be a number, got {value!r}")

    @staticmethod
    def get_display_value(key: str, override: Optional[Any] = None) -> tuple[Any, str]:
        """
        Get configuration value and its source.

        Returns:
            Tuple of (value, source) where source is 'override', 'env', or 'default'
        """
        # Tier 3: explicit override
        if override is not None and override != "":
            return override, "override"

        # Tier 2: Environment variable
        env_value = os.getenv(key)
        if env_value is not None and env_value != "":
            return env_value, "env"

        # Tier 1: Default value
        return ConfigManager.DEFAULTS.get(key, ""), "default"

    @staticmethod
    def is_using_default(key: str, override: Optional[Any] = None) -> bool:
        """Check if configuration is using default value."""
        _, source = ConfigManager.get_display_value(key, override)
        return source == "default"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging from LOG_LEVEL."""
    level_name = str(ConfigManager.get("LOG_LEVEL", level)).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
