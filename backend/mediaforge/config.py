"""Application configuration using Pydantic Settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """mediaforge settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "mediaforge"
    DEBUG: bool = False

    # --- fal.ai queue (Seedream, Kling, Wan) ---
    FAL_API_KEY: str = ""
    FAL_QUEUE_URL: str = "https://queue.fal.run"

    # --- Google Generative Language (Gemini image, Veo video) ---
    GOOGLE_API_KEY: str = ""
    GOOGLE_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_IMAGE_MODEL: str = "gemini-3-pro-image-preview"
    VEO_MODEL: str = "veo-3.1-generate-preview"

    # --- HTTP ---
    HTTP_TIMEOUT: float = 180.0

    # --- Retry policy (fixed schedule, indexed by attempt) ---
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_DELAYS: list[float] = [2.0, 4.0, 6.0]

    # --- Job polling ---
    POLL_INTERVAL: float = 5.0
    POLL_MAX_ATTEMPTS: int = 60
    POLL_TIMEOUT: float = 300.0

    # --- HTTP job board (status route) ---
    JOB_BOARD_MAX_ENTRIES: int = 1000

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
