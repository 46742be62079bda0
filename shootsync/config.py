"""
Shoot Sync — Centralized configuration.

Loads all settings from .env and validates them.
Every other module reads its settings from here.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from shootsync/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

_PROVIDERS = {"google", "caldav"}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite
    DATABASE_PATH: str = "data/shootsync.db"

    # Local timezone used to interpret shoot date/time input and list windows
    TIMEZONE: str = "UTC"

    # Calendar provider: "google" | "caldav"
    CALENDAR_PROVIDER: str = "google"
    DEFAULT_CALENDAR_ID: str = "primary"

    # Sync window pulled from the provider, in days from today
    SYNC_WINDOW_DAYS: int = 14
    # Default unified list window, in months from today
    LIST_WINDOW_MONTHS: int = 3

    # Upper bound for a single provider call (pull or create)
    PROVIDER_TIMEOUT_SECONDS: float = 20.0

    # Pull the sync window before checking a new shoot for conflicts
    SYNC_BEFORE_CONFLICT_CHECK: bool = False

    # CalDAV server (only needed when CALENDAR_PROVIDER=caldav and the
    # owner's stored credentials don't carry their own)
    CALDAV_URL: str = ""
    CALDAV_USERNAME: str = ""
    CALDAV_PASSWORD: str = ""
    CALDAV_CALENDAR_NAME: str = ""

    # Security: empty list means every authenticated owner is accepted
    ALLOWED_OWNER_EMAILS: list[str] = []

    # HTTP
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    @field_validator("ALLOWED_OWNER_EMAILS", mode="before")
    @classmethod
    def parse_owner_emails(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, list):
            return [e.strip().lower() for e in v if e.strip()]
        if isinstance(v, str) and v.strip():
            return [e.strip().lower() for e in v.split(",") if e.strip()]
        return []

    @field_validator("SYNC_BEFORE_CONFLICT_CHECK", mode="before")
    @classmethod
    def parse_bool(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in {"1", "true", "yes", "on"}

    @field_validator("SYNC_WINDOW_DAYS", "LIST_WINDOW_MONTHS", mode="before")
    @classmethod
    def parse_positive_int(cls, v: str | int) -> int:
        value = int(v)
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value


def _load_settings() -> Settings:
    """Load settings from environment, validating enumerated keys."""
    provider = os.getenv("CALENDAR_PROVIDER", "google").strip().lower()
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()

    if provider not in _PROVIDERS:
        print(
            f"ERROR: CALENDAR_PROVIDER must be one of {sorted(_PROVIDERS)}, got {provider!r}",
            file=sys.stderr,
        )
        sys.exit(1)

    if log_level not in _LOG_LEVELS:
        print(f"ERROR: LOG_LEVEL {log_level!r} is not a logging level", file=sys.stderr)
        sys.exit(1)

    return Settings(
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/shootsync.db"),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        CALENDAR_PROVIDER=provider,
        DEFAULT_CALENDAR_ID=os.getenv("DEFAULT_CALENDAR_ID", "primary"),
        SYNC_WINDOW_DAYS=os.getenv("SYNC_WINDOW_DAYS", "14"),
        LIST_WINDOW_MONTHS=os.getenv("LIST_WINDOW_MONTHS", "3"),
        PROVIDER_TIMEOUT_SECONDS=os.getenv("PROVIDER_TIMEOUT_SECONDS", "20"),
        SYNC_BEFORE_CONFLICT_CHECK=os.getenv("SYNC_BEFORE_CONFLICT_CHECK", "false"),
        CALDAV_URL=os.getenv("CALDAV_URL", ""),
        CALDAV_USERNAME=os.getenv("CALDAV_USERNAME", ""),
        CALDAV_PASSWORD=os.getenv("CALDAV_PASSWORD", ""),
        CALDAV_CALENDAR_NAME=os.getenv("CALDAV_CALENDAR_NAME", ""),
        ALLOWED_OWNER_EMAILS=os.getenv("ALLOWED_OWNER_EMAILS", ""),
        API_HOST=os.getenv("API_HOST", "127.0.0.1"),
        API_PORT=os.getenv("API_PORT", "8000"),
        LOG_LEVEL=log_level,
    )


# Singleton, imported by all other modules as:
#   from shootsync.config import settings
settings = _load_settings()
