"""Calendar adapter factory — creates the right adapter for an integration."""

from __future__ import annotations

from shootsync.config import settings
from shootsync.ports.calendar_port import CalendarPort


def create_calendar_adapter(
    provider: str | None = None, credentials_json: str | None = None,
) -> CalendarPort:
    """Return the calendar adapter for `provider` (default: CALENDAR_PROVIDER).

    Args:
        credentials_json: Per-owner credentials. Passed to adapter constructors.
    """
    provider = (provider or settings.CALENDAR_PROVIDER).lower()

    if provider == "google":
        from shootsync.adapters.google_calendar import GoogleCalendarAdapter

        return GoogleCalendarAdapter(token_json=credentials_json)

    if provider == "caldav":
        from shootsync.adapters.caldav_calendar import CalDAVCalendarAdapter

        return CalDAVCalendarAdapter(cred_json=credentials_json)

    raise ValueError(f"Unknown CALENDAR_PROVIDER: {provider!r}")
