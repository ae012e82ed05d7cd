"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the API, the Celery worker
and the beat scheduler.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    # DATABASE_URL wins over the POSTGRES_* parts when set (tests use SQLite).
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="quote_cadence")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=10)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Redis Configuration
    REDIS_URL: str = Field(default="redis://redis:6379/0")

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Celery Configuration
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")

    # Scheduling
    # IANA zone the schedules' wall-clock times are interpreted in.
    DEFAULT_TIMEZONE: str = Field(default="UTC")
    DEFAULT_SCHEDULE_HOUR: int = Field(default=9, ge=0, le=23)
    DEFAULT_SCHEDULE_MINUTE: int = Field(default=0, ge=0, le=59)
    DEFAULT_EXCLUDE_RECENT_DAYS: int = Field(default=7, ge=0)
    DELIVERY_RETENTION_DAYS: int = Field(default=30, ge=1)
    # In-flight lock held by a delivery batch run (seconds). Never shorter than
    # the task's hard time limit plus a margin.
    DELIVERY_LOCK_TTL_S: int = Field(default=420)

    # In-process LRU cache: entries per partition
    CACHE_PARTITION_SIZE: int = Field(default=50, ge=1)

    # Widget slot (Redis) expiry
    WIDGET_QUOTE_TTL_S: int = Field(default=2 * 24 * 3600)

    # Notification (email) Configuration
    NOTIFICATIONS_ENABLED: bool = Field(default=False)
    SMTP_SERVER: str = Field(default="localhost")
    SMTP_PORT: int = Field(default=587)
    SMTP_USERNAME: Optional[str] = Field(default=None)
    SMTP_PASSWORD: Optional[str] = Field(default=None)
    FROM_EMAIL: str = Field(default="noreply@quotecadence.app")
    FROM_NAME: str = Field(default="Quote Cadence")
    NOTIFICATION_RECIPIENT: Optional[str] = Field(default=None)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)


# Global settings instance
settings = Settings()
