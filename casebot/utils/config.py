"""
Configuration Utility - Environment Variables Management

Centralized configuration loading from .env files using pydantic-settings.
Type-safe access to all environment variables with validation.

Usage:
    from casebot.utils.config import settings

    base_url = settings.CENTAX_BASE_URL
    delay = settings.FETCH_ITEM_DELAY
"""

from functools import lru_cache
from pathlib import Path

from pydantic import EmailStr, Field
from pydantic_settings import BaseSettings

PACKAGE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Centax API Configuration
    CENTAX_BASE_URL: str = Field(default="https://api.centaxonline.com")
    CENTAX_PDF_URL: str = Field(default="https://pdf.taxmann.com/research/getFilehtmlTopdf")
    CENTAX_APP_ID: str = Field(default="2020")
    CENTAX_EMAIL: EmailStr | None = Field(default=None)
    CENTAX_PASSWORD: str | None = Field(default=None)
    CENTAX_MACHINE_ID: str | None = Field(default=None)
    API_TIMEOUT: int = Field(default=60)

    # Session
    SESSION_FILE: str = Field(default="session.json")
    SESSION_SAFETY_MARGIN: int = Field(default=300)

    # Search
    SEARCH_PAGE_SIZE: int = Field(default=20, le=20)
    SEARCH_PAGE_DELAY: float = Field(default=0.3)
    ANALYZE_DEFAULT_COUNT: int = Field(default=100)

    # Fetch loop
    FETCH_MAX_ATTEMPTS: int = Field(default=3)
    FETCH_BACKOFF_BASE: float = Field(default=5.0)
    FETCH_BACKOFF_CAP: float = Field(default=30.0)
    FETCH_FAILURE_THRESHOLD: int = Field(default=5)
    FETCH_FAILURE_COOLDOWN: float = Field(default=30.0)
    FETCH_ITEM_DELAY: float = Field(default=0.8)
    FETCH_COOLDOWN_EVERY: int = Field(default=30)
    FETCH_COOLDOWN_DELAY: float = Field(default=15.0)
    FETCH_PROGRESS_EVERY: int = Field(default=5)

    # Downloads
    DOWNLOAD_DELAY: float = Field(default=2.0)

    # File System Paths
    DOWNLOADS_DIR: str = Field(default="downloads")
    SUMMARIES_FILE: str = Field(default="downloads/summaries.json")
    LAST_SEARCH_FILE: str = Field(default="downloads/last_search.json")
    FILTERS_CSV: str = Field(default=str(PACKAGE_DIR / "data" / "filters.csv"))

    # Language model
    OPENAI_API_KEY: str | None = Field(default=None)
    OPENAI_MODEL: str = Field(default="gpt-4o-mini")
    SUMMARY_MAX_CHARS: int = Field(default=12000)
    SUMMARY_DELAY: float = Field(default=0.5)

    # Redis Configuration (progress events; empty disables publishing)
    REDIS_URL: str = Field(default="")
    REDIS_MAX_CONNECTIONS: int = Field(default=10)
    REDIS_CHANNEL_PROGRESS: str = Field(default="casebot.progress")

    # Backend API Configuration
    API_PORT: int = Field(default=3000)
    API_HOST: str = Field(default="0.0.0.0")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="text")

    # Application Metadata
    APP_NAME: str = Field(default="casebot")
    APP_VERSION: str = Field(default="0.1.0")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
