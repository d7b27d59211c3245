# gnarhub/core/config.py

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # The environment mode: 'local' or 'prod'
    ENV: str = "local"

    # --- Database ---
    DATABASE_URL_LOCAL: str = "sqlite+aiosqlite:///./gnarhub.db"
    DATABASE_URL_PROD: Optional[str] = None

    # --- Kafka (optional - notifications are only logged without it) ---
    KAFKA_BOOTSTRAP_SERVERS_LOCAL: Optional[str] = None
    KAFKA_BOOTSTRAP_SERVERS_PROD: Optional[str] = None
    NOTIFICATIONS_TOPIC: str = "booking.notifications.v1"
    KAFKA_SEND_TIMEOUT_SECONDS: int = 10

    # Optimistic transactions are retried this many times before giving up
    TRANSACTION_MAX_ATTEMPTS: int = 5

    # Session reminders are sent once a day, for the next day's bookings
    REMINDER_HOUR_UTC: int = 17

    LOG_LEVEL: str = "INFO"

    @field_validator("TRANSACTION_MAX_ATTEMPTS")
    @classmethod
    def check_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("TRANSACTION_MAX_ATTEMPTS must be at least 1")
        return v

    @field_validator("REMINDER_HOUR_UTC")
    @classmethod
    def check_reminder_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("REMINDER_HOUR_UTC must be between 0 and 23")
        return v

    # --- Dynamic Properties ---
    @property
    def DATABASE_URL(self) -> str:
        if self.ENV == "local" or not self.DATABASE_URL_PROD:
            return self.DATABASE_URL_LOCAL
        return self.DATABASE_URL_PROD

    @property
    def KAFKA_BOOTSTRAP_SERVERS(self) -> Optional[str]:
        return (
            self.KAFKA_BOOTSTRAP_SERVERS_LOCAL
            if self.ENV == "local"
            else self.KAFKA_BOOTSTRAP_SERVERS_PROD
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Singleton instance for direct imports
settings = get_settings()
