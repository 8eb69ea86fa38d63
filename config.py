"""
Configuration settings for the deck-quiz service.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///./deckquiz.db",
        description="SQLAlchemy connection string (SQLite or PostgreSQL)",
    )

    # ========================================
    # Quiz Sessions
    # ========================================
    quiz_default_count: int = Field(
        default=10,
        description="Questions per session when the request does not say",
    )
    quiz_max_count: int = Field(
        default=100,
        description="Upper bound on questions per session",
    )
    quiz_mastered_threshold: int = Field(
        default=2,
        description="Streak at which a question counts as mastered",
    )
    quiz_random_seed: int | None = Field(
        default=None,
        description="Fixed seed for the session sampler (None = OS entropy)",
    )

    # ========================================
    # Semantic Grading Delegate
    # ========================================
    grading_delegate_mode: Literal["disabled", "responses", "chat_completions"] = Field(
        default="disabled",
        description="Call shape of the semantic grading service",
    )
    grading_delegate_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the OpenAI-compatible grading service",
    )
    grading_delegate_api_key: str | None = Field(
        default=None,
        description="Bearer token for the grading service",
    )
    grading_delegate_model: str = Field(
        default="gpt-5-mini",
        description="Model name sent to the grading service",
    )
    grading_delegate_timeout_ms: int = Field(
        default=8000,
        description="Per-call timeout for the grading service",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default="logs/deckquiz.log",
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # API Server
    # ========================================
    api_host: str = Field(
        default="127.0.0.1",
        description="API server host",
    )
    api_port: int = Field(
        default=3001,
        description="API server port",
    )

    # ========================================
    # Helper Methods
    # ========================================
    def has_grading_delegate(self) -> bool:
        """Check if a semantic grading service is configured."""
        return self.grading_delegate_mode != "disabled" and bool(self.grading_delegate_api_key)

    def get_quiz_config(self) -> dict[str, Any]:
        """Get quiz session configuration as a dictionary."""
        return {
            "default_count": self.quiz_default_count,
            "max_count": self.quiz_max_count,
            "mastered_threshold": self.quiz_mastered_threshold,
            "seeded": self.quiz_random_seed is not None,
        }

    def get_grading_config(self) -> dict[str, Any]:
        """Get grading delegate configuration (non-sensitive)."""
        return {
            "mode": self.grading_delegate_mode,
            "configured": self.has_grading_delegate(),
            "model": self.grading_delegate_model,
            "timeout_ms": self.grading_delegate_timeout_ms,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
