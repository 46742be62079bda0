"""
Shoot Sync — Data Models.

Shoots are owned by this system; cached calendar events are a local copy of
what the external calendar provider reports. The two are linked by a weak,
two-sided reference (Shoot.external_event_id <-> CachedCalendarEvent.shoot_id)
that the sync keeps consistent on a best-effort basis.

All datetimes are timezone-aware and normalized to UTC.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum


class ShootStatus(Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SyncStatus(Enum):
    PENDING = "pending"
    SYNCED = "synced"
    ERROR = "error"


class EventStatus(Enum):
    CONFIRMED = "confirmed"
    TENTATIVE = "tentative"
    CANCELLED = "cancelled"


@dataclass
class Client:
    """A client whose content is being shot."""

    id: int
    name: str


@dataclass
class Attendee:
    email: str
    display_name: str | None = None
    response_status: str | None = None   # needsAction | declined | tentative | accepted


@dataclass
class ConflictSnapshot:
    """Display copy of an overlapping event, frozen at detection time."""

    title: str
    start_time: datetime
    end_time: datetime
    event_id: str = ""


@dataclass
class Shoot:
    """A scheduled content shoot.

    Created only by the ShootScheduler. The calendar fields are written only
    by the calendar sync: external_event_id is set when sync_status is
    "synced"; a row in "error" that still carries an id is an orphan left
    for the next reconciliation pass.
    """

    id: int
    title: str
    client_id: int
    scheduled_at: datetime
    duration: int                           # minutes, > 0
    location: str
    status: ShootStatus = ShootStatus.SCHEDULED
    notes: str | None = None
    external_event_id: str | None = None
    sync_status: SyncStatus = SyncStatus.PENDING
    last_sync_at: datetime | None = None
    sync_error: str | None = None
    client_name: str | None = None          # joined in on reads
    post_idea_count: int = 0

    @property
    def end_time(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration)


@dataclass
class CachedCalendarEvent:
    """Local copy of one external calendar event.

    Identity is (owner_email, calendar_id, external_event_id). Recurring
    events are stored as already-expanded single instances.
    """

    owner_email: str
    calendar_id: str
    external_event_id: str
    title: str
    start_time: datetime
    end_time: datetime
    description: str | None = None
    location: str | None = None
    attendees: list[Attendee] = field(default_factory=list)
    is_recurring: bool = False
    recurring_event_id: str | None = None
    status: EventStatus = EventStatus.CONFIRMED
    shoot_id: int | None = None             # weak back-reference, not ownership
    conflict_detected: bool = False
    conflict_details: list[ConflictSnapshot] = field(default_factory=list)
    sync_status: SyncStatus = SyncStatus.SYNCED
    last_modified: datetime | None = None

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)


@dataclass
class CalendarIntegration:
    """An owner's connection to an external calendar provider."""

    owner_email: str
    provider: str
    connected: bool = False
    credentials_json: str | None = None
    calendar_id: str = "primary"
    error: str | None = None
    last_sync_at: datetime | None = None
