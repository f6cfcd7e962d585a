from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReminderSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REMINDER_", env_file=".env", extra="ignore")

    # Scheduling
    DISPATCH_INTERVAL_SECONDS: int = 60
    FIRE_HOUR: int = 9
    FIRE_MINUTE: int = 0

    # Transports
    TRANSPORT_TIMEOUT_SECONDS: float = 10.0

    # Celery configuration
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None

    # Single-dispatcher guard; skipped when unset
    REDIS_URL: Optional[str] = None
    DISPATCH_LOCK_TIMEOUT_SECONDS: int = 300

    # SMTP (email channels); email falls back to a noop transport when host is empty
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM: str = "reminders@localhost"
    SMTP_USE_TLS: bool = True

    # FCM
    FCM_PROJECT_ID: Optional[str] = None
    FCM_CREDENTIALS_JSON: Optional[str] = None  # path or inline JSON via env

    # Metrics
    METRICS_ENABLED: bool = True

    @model_validator(mode="after")
    def _validate_fire_time(self) -> "ReminderSettings":
        if not 0 <= self.FIRE_HOUR <= 23:
            raise ValueError("REMINDER_FIRE_HOUR must be between 0 and 23")
        if not 0 <= self.FIRE_MINUTE <= 59:
            raise ValueError("REMINDER_FIRE_MINUTE must be between 0 and 59")
        if self.TRANSPORT_TIMEOUT_SECONDS <= 0:
            raise ValueError("REMINDER_TRANSPORT_TIMEOUT_SECONDS must be positive")
        return self


settings = ReminderSettings()
