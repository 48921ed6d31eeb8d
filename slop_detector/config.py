"""
Configuration for the slop detector.

Reads environment variables (optionally from a .env file in the project
root or the current directory) into a Settings object.
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).parent.parent

env_path = BASE_DIR / ".env"
if env_path.exists():
    load_dotenv(env_path)
else:
    load_dotenv()


class ConfigError(RuntimeError):
    """Raised when a required setting is missing or invalid."""


def _get_env(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    """Get environment variable with optional default and required check."""
    value = os.getenv(key, default)
    if required and not value:
        raise ConfigError(f"Required environment variable {key} is not set")
    return value


def _get_env_int(key: str, default: int) -> int:
    """Get integer environment variable."""
    raw = os.getenv(key, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")


def _get_env_float(key: str, default: float) -> float:
    """Get float environment variable."""
    raw = os.getenv(key, str(default))
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}")


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        # API access
        self.YOUTUBE_API_KEY: str = _get_env("YOUTUBE_API_KEY", "")
        self.YOUTUBE_API_BASE: str = _get_env(
            "YOUTUBE_API_BASE", "https://www.googleapis.com/youtube/v3"
        )
        self.YOUTUBE_REGION_CODE: str = _get_env("YOUTUBE_REGION_CODE", "US")
        self.HTTP_TIMEOUT: float = _get_env_float("HTTP_TIMEOUT", 30.0)

        # Text generation
        self.OLLAMA_HOST: str = _get_env("OLLAMA_HOST", "http://localhost:11434")
        self.LLM_MODEL: str = _get_env("LLM_MODEL", "qwen2.5:7b")
        self.LLM_MIN_INTERVAL: float = _get_env_float("LLM_MIN_INTERVAL", 1.5)
        self.LLM_TIMEOUT: float = _get_env_float("LLM_TIMEOUT", 60.0)

        # Storage
        self.DATABASE_PATH: str = _get_env("DATABASE_PATH", "data.db")

        # Run loop
        self.MAX_RUNTIME_SECONDS: float = _get_env_float("MAX_RUNTIME_SECONDS", 540.0)
        self.BATCH_SIZE: int = _get_env_int("BATCH_SIZE", 50)
        self.RECENT_VIDEO_SAMPLE: int = _get_env_int("RECENT_VIDEO_SAMPLE", 200)

        self.LOG_LEVEL: str = _get_env("LOG_LEVEL", "INFO").upper()

        if not 1 <= self.BATCH_SIZE <= 50:
            raise ConfigError("BATCH_SIZE must be between 1 and 50")
        if not 1 <= self.RECENT_VIDEO_SAMPLE <= 500:
            raise ConfigError("RECENT_VIDEO_SAMPLE must be between 1 and 500")

    def require_youtube_key(self) -> str:
        """Return the YouTube API key, failing fast when it is absent."""
        if not self.YOUTUBE_API_KEY:
            raise ConfigError("Required environment variable YOUTUBE_API_KEY is not set")
        return self.YOUTUBE_API_KEY
