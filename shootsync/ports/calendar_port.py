"""Calendar port — abstract interface for the external calendar provider.

Core modules depend on this protocol, never on a specific provider. Every
provider failure the core knows how to handle is raised as one of the
CalendarProviderError subclasses below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from shootsync.data.models import Attendee


class CalendarProviderError(Exception):
    """Raised when a calendar provider operation fails."""

    kind = "unknown"


class AuthExpiredError(CalendarProviderError):
    """Stored credentials were rejected or could not be refreshed."""

    kind = "auth_expired"


class PermissionDeniedError(CalendarProviderError):
    """Credentials are valid but lack access to the calendar."""

    kind = "permission_denied"


class RateLimitedError(CalendarProviderError):
    """The provider throttled the request."""

    kind = "rate_limited"


class UnknownProviderError(CalendarProviderError):
    """Any other provider failure, including timeouts."""

    kind = "unknown"


@dataclass
class ProviderEvent:
    """An event as reported by the provider, normalized to UTC."""

    id: str
    title: str
    start_time: datetime
    end_time: datetime
    description: str | None = None
    location: str | None = None
    status: str = "confirmed"             # confirmed | tentative | cancelled
    attendees: list[Attendee] = field(default_factory=list)
    recurring_event_id: str | None = None
    updated: datetime | None = None

    @property
    def is_recurring(self) -> bool:
        return self.recurring_event_id is not None


@dataclass
class EventDraft:
    """An event this system asks the provider to create."""

    title: str
    start_time: datetime
    end_time: datetime
    description: str = ""
    location: str = ""
    attendees: list[Attendee] = field(default_factory=list)


class CalendarPort(Protocol):
    """Abstract calendar interface used by the calendar sync."""

    async def pull(
        self, calendar_id: str, range_start: datetime, range_end: datetime
    ) -> list[ProviderEvent]: ...

    async def create(self, calendar_id: str, draft: EventDraft) -> ProviderEvent: ...

    async def delete(self, calendar_id: str, event_id: str) -> None:
        """Remove an event. An event that is already gone is not an error."""
        ...
