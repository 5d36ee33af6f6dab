"""
Application configuration management using Pydantic Settings.

Loads configuration from environment variables and .env files.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Logging
    # ==========================================================================
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Emit JSON log lines")

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise and check the logging level name."""
        level = str(v).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(LOG_LEVELS)}")
        return level

    # ==========================================================================
    # Formula Engine
    # ==========================================================================
    formula_cache_enabled: bool = Field(
        default=True, description="Cache calculation results per engine instance"
    )
    formula_cache_max_size: int = Field(
        default=1000, description="Max cached results before the oldest is evicted"
    )
    formula_max_length: int = Field(
        default=10000, description="Longest formula text accepted by the parser"
    )
    formula_complexity_threshold: int = Field(
        default=50, description="Complexity score above which validation warns"
    )
    formula_max_nesting_depth: int = Field(
        default=5, description="Parenthesis depth above which validation warns"
    )

    @field_validator(
        "formula_cache_max_size",
        "formula_max_length",
        "formula_complexity_threshold",
        "formula_max_nesting_depth",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Limits must be positive."""
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Global settings instance
settings = get_settings()
