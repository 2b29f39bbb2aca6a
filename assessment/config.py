"""
Configuration management using Pydantic Settings
"""
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Assessment Core"
    APP_VERSION: str = "1.0.0"

    # Storage
    STORAGE_BACKEND: str = "memory"  # memory | redis
    REDIS_URL: str = "redis://localhost:6379/0"
    STORAGE_NAMESPACE: str = "assessment"

    # Attempts
    MAX_ATTEMPTS_STORED: int = 20
    SUBMIT_MAX_RETRIES: int = 3
    BACKOFF_BASE_SECONDS: float = 1.0
    BACKOFF_CAP_SECONDS: float = 7.0

    # Gating
    SECTION_READ_THRESHOLD: float = 0.85
    DEFAULT_PASSING_SCORE: float = 70.0
    QUIZ_GATING_ENABLED: bool = True

    # Events / i18n
    EVENT_LOG_SIZE: int = 1000
    DEFAULT_LOCALE: str = "en"

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance"""
    return Settings()
