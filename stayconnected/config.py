"""
StayConnected — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from stayconnected/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Datastore (the only hard requirement)
    DATABASE_PATH: str

    # Email: SendGrid
    SENDGRID_API_KEY: str = ""
    FROM_EMAIL: str = "notifications@stayconnected.app"

    # SMS: Telnyx
    TELNYX_API_KEY: str = ""
    FROM_PHONE: str = ""

    # Push: Expo
    EXPO_ACCESS_TOKEN: str = ""

    # Outbound provider calls: bounded timeout and capped retries per channel
    EMAIL_TIMEOUT_SECONDS: float = 10.0
    SMS_TIMEOUT_SECONDS: float = 10.0
    PUSH_TIMEOUT_SECONDS: float = 10.0
    EMAIL_MAX_RETRIES: int = 2
    SMS_MAX_RETRIES: int = 2
    PUSH_MAX_RETRIES: int = 2

    # Cron endpoint shared secret (empty → endpoint is open)
    CRON_SECRET: str = ""

    # Used when an event has no threshold stored
    DEFAULT_MISSED_CHECKIN_THRESHOLD: int = 1

    # HTTP server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    @field_validator(
        "EMAIL_TIMEOUT_SECONDS", "SMS_TIMEOUT_SECONDS", "PUSH_TIMEOUT_SECONDS",
        mode="before",
    )
    @classmethod
    def parse_timeout(cls, v: str | float) -> float:
        value = float(v)
        if value <= 0:
            raise ValueError("timeout must be positive")
        return value

    @field_validator(
        "EMAIL_MAX_RETRIES", "SMS_MAX_RETRIES", "PUSH_MAX_RETRIES",
        "DEFAULT_MISSED_CHECKIN_THRESHOLD", "PORT",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("DEFAULT_MISSED_CHECKIN_THRESHOLD")
    @classmethod
    def threshold_at_least_one(cls, v: int) -> int:
        return max(v, 1)

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def upper_level(cls, v: str) -> str:
        return str(v).upper()

    def channel_timeout(self, channel: str) -> float:
        """Timeout in seconds for one outbound call on a channel."""
        return getattr(self, f"{channel.upper()}_TIMEOUT_SECONDS")

    def channel_retries(self, channel: str) -> int:
        """Number of retries after the first failed attempt on a channel."""
        return max(getattr(self, f"{channel.upper()}_MAX_RETRIES"), 0)


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    database_path = os.getenv("DATABASE_PATH", "")

    if not database_path:
        print("ERROR: DATABASE_PATH is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        DATABASE_PATH=database_path,
        SENDGRID_API_KEY=os.getenv("SENDGRID_API_KEY", ""),
        FROM_EMAIL=os.getenv("FROM_EMAIL", "notifications@stayconnected.app"),
        TELNYX_API_KEY=os.getenv("TELNYX_API_KEY", ""),
        FROM_PHONE=os.getenv("FROM_PHONE", ""),
        EXPO_ACCESS_TOKEN=os.getenv("EXPO_ACCESS_TOKEN", ""),
        EMAIL_TIMEOUT_SECONDS=os.getenv("EMAIL_TIMEOUT_SECONDS", "10"),
        SMS_TIMEOUT_SECONDS=os.getenv("SMS_TIMEOUT_SECONDS", "10"),
        PUSH_TIMEOUT_SECONDS=os.getenv("PUSH_TIMEOUT_SECONDS", "10"),
        EMAIL_MAX_RETRIES=os.getenv("EMAIL_MAX_RETRIES", "2"),
        SMS_MAX_RETRIES=os.getenv("SMS_MAX_RETRIES", "2"),
        PUSH_MAX_RETRIES=os.getenv("PUSH_MAX_RETRIES", "2"),
        CRON_SECRET=os.getenv("CRON_SECRET", ""),
        DEFAULT_MISSED_CHECKIN_THRESHOLD=os.getenv("DEFAULT_MISSED_CHECKIN_THRESHOLD", "1"),
        HOST=os.getenv("HOST", "0.0.0.0"),
        PORT=os.getenv("PORT", "8000"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton, imported by entry points as:
#   from stayconnected.config import settings
settings = _load_settings()
