"""
Configuration settings for the Folio backend.
Loads environment variables and provides application-wide settings.
"""
from __future__ import annotations

import dataclasses
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Completion service (OpenAI-compatible chat completions)
    LLM_BASE_URL: str = "https://api.deepseek.com"
    LLM_API_KEY: str = ""
    LLM_MODEL: str = "deepseek-chat"
    LLM_TIMEOUT: float = 120.0  # seconds per completion call

    # Generation tuning
    GEN_TEMPERATURE: float = 0.25
    GEN_MAX_SECTION_TOKENS: int = 1600
    GEN_CONTINUATION_ROUNDS: int = 2  # total rounds including the first draft
    GEN_MIN_SECTION_CHARS: int = 900
    GEN_LONG_ENOUGH_CHARS: int = 2200
    GEN_TAIL_CHARS: int = 900  # anchor length for continuation prompts
    GEN_JSON_RETRIES: int = 2  # extra attempts after the first structured call
    GEN_TEMPERATURE_STEP: float = 0.05
    GEN_RETRY_DELAY_SECONDS: float = 0.25
    GEN_FALLBACK_MIN_CHARS: int = 120

    # Retrieval proxy (optional)
    RETRIEVAL_PROXY_URL: str = ""
    RETRIEVAL_TIMEOUT: float = 20.0

    # Jobs
    JOB_TTL_SECONDS: int = 60 * 60
    JOB_MAX_ENTRIES: int = 25
    JOB_SWEEP_INTERVAL_SECONDS: float = 60.0
    MAX_CONCURRENT_GENERATIONS: int = 1

    # Rendering
    PDF_MAX_PAGES: int = 36

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def get_allowed_origins(self) -> List[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]


# Global settings instance
settings = Settings()


@dataclasses.dataclass(frozen=True)
class GenerationConfig:
    """
    Tuning constants handed to the generation controllers.

    Built from ``settings`` in production; tests construct their own so no
    environment is needed.
    """

    temperature: float = 0.25
    max_tokens: int = 1600
    continuation_rounds: int = 2
    min_chars: int = 900
    long_enough_chars: int = 2200
    tail_chars: int = 900
    json_retries: int = 2
    temperature_step: float = 0.05
    retry_delay: float = 0.25
    fallback_min_chars: int = 120

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "GenerationConfig":
        s = source or settings
        return cls(
            temperature=s.GEN_TEMPERATURE,
            max_tokens=s.GEN_MAX_SECTION_TOKENS,
            continuation_rounds=max(1, s.GEN_CONTINUATION_ROUNDS),
            min_chars=s.GEN_MIN_SECTION_CHARS,
            long_enough_chars=s.GEN_LONG_ENOUGH_CHARS,
            tail_chars=s.GEN_TAIL_CHARS,
            json_retries=max(0, s.GEN_JSON_RETRIES),
            temperature_step=s.GEN_TEMPERATURE_STEP,
            retry_delay=s.GEN_RETRY_DELAY_SECONDS,
            fallback_min_chars=s.GEN_FALLBACK_MIN_CHARS,
        )
