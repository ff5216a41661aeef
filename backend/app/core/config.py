# backend/app/core/config.py
import logging
import os
from pathlib import Path
from typing import List, Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        alias="ENVIRONMENT",
        description="Deployment environment name",
    )
    database_url: str = Field(
        default="sqlite+pysqlite:///./reservations.db",
        alias="DATABASE_URL",
        description="SQLAlchemy URL for the reservation store (PostgreSQL in production)",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        alias="REDIS_URL",
        description="Broker URL for the Celery worker running the lock sweep",
    )

    # Advisory slot locks
    slot_lock_default_ttl_minutes: int = Field(
        default=10,
        ge=1,
        description="TTL applied when a caller does not ask for one",
    )
    slot_lock_max_ttl_minutes: int = Field(
        default=30,
        ge=1,
        description="Upper bound for any requested lock TTL",
    )
    slot_lock_sweep_interval_seconds: int = Field(
        default=60,
        ge=5,
        description="How often the beat schedule purges expired slot locks",
    )
    lock_internal_reservations: bool = Field(
        default=False,
        alias="LOCK_INTERNAL_RESERVATIONS",
        description="Wrap staff-initiated reservation creation in a slot lock",
    )

    # Public booking path
    public_booking_lock_ttl_minutes: int = Field(default=2, ge=1)
    public_booking_lock_retries: int = Field(default=1, ge=0, le=5)
    public_booking_lock_retry_delay_ms: int = Field(default=250, ge=0)

    # Scheduling
    availability_timezone: str = Field(
        default="UTC",
        alias="AVAILABILITY_TIMEZONE",
        description="Timezone in which staff working hours are expressed",
    )
    slot_interval_minutes: int = Field(default=30, ge=5, le=240)
    default_service_duration_minutes: int = Field(default=60, ge=5, le=720)

    # Post-creation side effects
    reminder_offsets_hours: List[int] = Field(default_factory=lambda: [24, 2])
    reminder_method: str = Field(default="whatsapp")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("reminder_offsets_hours")
    @classmethod
    def _positive_offsets(cls, value: List[int]) -> List[int]:
        if any(offset <= 0 for offset in value):
            raise ValueError("reminder offsets must be positive hour counts")
        return sorted(set(value), reverse=True)

    @model_validator(mode="after")
    def _default_ttl_within_max(self) -> "Settings":
        if self.slot_lock_default_ttl_minutes > self.slot_lock_max_ttl_minutes:
            raise ValueError("slot_lock_default_ttl_minutes cannot exceed slot_lock_max_ttl_minutes")
        return self


settings = Settings()
