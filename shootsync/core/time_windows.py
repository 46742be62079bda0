"""
Shoot Sync — Time windows.

Local-time helpers shared by the sync, the scheduler and the unified list.
User input (a date and a wall-clock time) is interpreted in settings.TIMEZONE;
everything returned is an aware UTC datetime.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from shootsync.config import settings


def _tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def parse_local_datetime(date_str: str, time_str: str) -> datetime:
    """Combine "YYYY-MM-DD" and "HH:MM" in the local timezone into a UTC instant.

    Raises:
        ValueError: if either part doesn't parse.
    """
    day = date.fromisoformat(date_str.strip())
    clock = datetime.strptime(time_str.strip(), "%H:%M").time()
    return datetime.combine(day, clock, tzinfo=_tz()).astimezone(timezone.utc)


def today_start(now: datetime | None = None) -> datetime:
    """Local midnight of the current day, as UTC."""
    local_now = (now or datetime.now(timezone.utc)).astimezone(_tz())
    return datetime.combine(local_now.date(), time.min, tzinfo=_tz()).astimezone(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day (Jan 31 + 1 month -> Feb 28/29)."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def sync_window(now: datetime | None = None) -> tuple[datetime, datetime]:
    """[today, today + SYNC_WINDOW_DAYS) — the range pulled from the provider."""
    start = today_start(now)
    return start, start + timedelta(days=settings.SYNC_WINDOW_DAYS)


def list_window(now: datetime | None = None) -> tuple[datetime, datetime]:
    """[today, today + LIST_WINDOW_MONTHS) — the default unified list range."""
    local_start = today_start(now).astimezone(_tz())
    local_end = add_months(local_start, settings.LIST_WINDOW_MONTHS)
    return local_start.astimezone(timezone.utc), local_end.astimezone(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Aware UTC copy of `value`; a naive value is read as local time."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=_tz())
    return value.astimezone(timezone.utc)


def parse_instant(value: str) -> datetime:
    """Parse a query bound: "YYYY-MM-DD" is local midnight, else ISO 8601.

    Raises:
        ValueError: if the value doesn't parse.
    """
    value = value.strip()
    if len(value) == 10:
        day = date.fromisoformat(value)
        return datetime.combine(day, time.min, tzinfo=_tz()).astimezone(timezone.utc)
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
