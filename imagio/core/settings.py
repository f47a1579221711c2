"""
Centralized application settings using Pydantic.

All environment variables are read once at startup and validated.
Use this instead of scattered os.getenv() calls throughout the codebase.
"""

import tempfile
from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings

from imagio.core.config import (
    HTTP_CLIENT_TIMEOUT_SECONDS,
    LLM_REQUEST_TIMEOUT_SECONDS,
    LONG_POLL_MAX_ATTEMPTS,
    POLL_INTERVAL_SECONDS,
    SHORT_POLL_MAX_ATTEMPTS,
)


class ProviderSettings(BaseSettings):
    """Credentials and endpoints for image generation providers."""

    BFL_API_KEY: SecretStr = SecretStr("")
    BFL_BASE_URL: str = "https://api.bfl.ai/v1"
    BLTCY_API_KEY: SecretStr = SecretStr("")
    BLTCY_BASE_URL: str = "https://api.bltcy.ai"
    GEMINI_API_KEY: SecretStr = SecretStr("")
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}


class PollingSettings(BaseSettings):
    """Attempt budgets for pollable and interactive jobs."""

    POLL_INTERVAL_SECONDS: float = POLL_INTERVAL_SECONDS
    SHORT_POLL_MAX_ATTEMPTS: int = SHORT_POLL_MAX_ATTEMPTS
    LONG_POLL_MAX_ATTEMPTS: int = LONG_POLL_MAX_ATTEMPTS
    POLL_MAX_CONSECUTIVE_ERRORS: int = 0

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}


class LLMSettings(BaseSettings):
    """Prompt optimization LLM configuration."""

    LLM_BASE_URL: str = "http://localhost:11434/v1"
    LLM_API_KEY: SecretStr = SecretStr("")
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TIMEOUT_SECONDS: float = LLM_REQUEST_TIMEOUT_SECONDS

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}


class AppSettings(BaseSettings):
    """General application settings."""

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    IMAGIO_MEDIA_DIR: str = ""
    HTTP_TIMEOUT_SECONDS: float = HTTP_CLIENT_TIMEOUT_SECONDS
    OCR_COMMAND: str = "imagio-ocr"
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}

    @property
    def media_dir(self) -> Path:
        """Resolve media directory from environment, defaulting to the system temp dir."""
        env_media_dir = self.IMAGIO_MEDIA_DIR.strip()
        if env_media_dir:
            return Path(env_media_dir).resolve()
        return Path(tempfile.gettempdir()) / "imagio-media"


# Singleton instances - loaded once at module import
provider_settings = ProviderSettings()
polling_settings = PollingSettings()
llm_settings = LLMSettings()
app_settings = AppSettings()
