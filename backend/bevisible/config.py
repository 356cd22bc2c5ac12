"""Application configuration."""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://bevisible:bevisible@db:5432/bevisible"

    # Providers
    PERPLEXITY_API_KEY: Optional[str] = None
    PERPLEXITY_MODEL: str = "sonar"
    GOOGLE_API_KEY: Optional[str] = None
    GOOGLE_CSE_ID: Optional[str] = None
    PROVIDER_TIMEOUT_SECONDS: float = 60.0

    # URL classification service (optional)
    URL_CLASSIFIER_ENDPOINT: Optional[str] = None
    URL_CLASSIFIER_API_KEY: Optional[str] = None

    # Schedule generation
    MAX_PROMPTS_PER_BRAND: int = 30
    MIN_PROMPT_REUSE_HOURS: float = 24.0  # Same prompt must not repeat on one account sooner
    HISTORY_LOOKBACK_DAYS: int = 7
    MIN_BATCH_SIZE: int = 1
    MAX_BATCH_SIZE: int = 6
    SCHEDULE_WINDOW_START_HOUR: int = 8   # 8 AM reference time
    SCHEDULE_WINDOW_END_HOUR: int = 18    # 6 PM reference time
    MIN_SLOT_SPACING_MINUTES: int = 10
    SCHEDULE_TIMEZONE: str = "America/Los_Angeles"
    NIGHTLY_SCHEDULE_HOUR: int = 2

    # Report pipeline
    STAGE_BATCH_SIZE: int = 5
    STAGE_BATCH_DELAY_SECONDS: float = 2.0
    INTER_BRAND_DELAY_SECONDS: float = 30.0
    STAGE_STALE_AFTER_MINUTES: int = 60
    SENTIMENT_WINDOW_CHARS: int = 100
    DAILY_REPORTS_HOUR: int = 20

    # Account pool
    MAX_CONSECUTIVE_ACCOUNT_ERRORS: int = 3
    HISTORY_RETENTION_DAYS: int = 30

    # Feature Flags
    ENABLE_SCHEDULER: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
