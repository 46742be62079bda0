"""
Shoot Sync — Unified Event Merger.

Read-only view that merges shoots and cached calendar events into one
time-ordered stream for a date window. Nothing here writes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from shootsync.core.conflict_checker import validate_interval
from shootsync.core.time_windows import list_window
from shootsync.data.models import Attendee, CachedCalendarEvent, Shoot

if TYPE_CHECKING:
    from shootsync.data.db import CalendarCacheDB, ClientDB, ShootDB

logger = logging.getLogger(__name__)

ALL_CLIENTS = "All Clients"


class EventFilter(Enum):
    SHOOTS = "shoots"
    CALENDAR = "calendar"
    ALL = "all"


@dataclass
class ShootEvent:
    shoot_id: int
    title: str
    client: str | None
    start_time: datetime
    end_time: datetime
    duration: int
    status: str
    sync_status: str
    post_idea_count: int = 0
    location: str | None = None
    notes: str | None = None
    kind: str = "shoot"


@dataclass
class CalendarEvent:
    external_event_id: str
    title: str
    start_time: datetime
    end_time: datetime
    duration: int
    attendees: list[Attendee] = field(default_factory=list)
    is_recurring: bool = False
    conflict_detected: bool = False
    linked_shoot_id: int | None = None
    location: str | None = None
    description: str | None = None
    kind: str = "calendar"


UnifiedEvent = ShootEvent | CalendarEvent


@dataclass
class UnifiedEventList:
    events: list[UnifiedEvent]
    filter: EventFilter
    shoots_count: int = 0
    calendar_events_count: int = 0

    @property
    def total_count(self) -> int:
        return len(self.events)


def _shoot_event(shoot: Shoot) -> ShootEvent:
    return ShootEvent(
        shoot_id=shoot.id,
        title=shoot.title,
        client=shoot.client_name,
        start_time=shoot.scheduled_at,
        end_time=shoot.end_time,
        duration=shoot.duration,
        status=shoot.status.value,
        sync_status=shoot.sync_status.value,
        post_idea_count=shoot.post_idea_count,
        location=shoot.location,
        notes=shoot.notes,
    )


def _calendar_event(event: CachedCalendarEvent) -> CalendarEvent:
    return CalendarEvent(
        external_event_id=event.external_event_id,
        title=event.title,
        start_time=event.start_time,
        end_time=event.end_time,
        duration=event.duration_minutes,
        attendees=list(event.attendees),
        is_recurring=event.is_recurring,
        conflict_detected=event.conflict_detected,
        linked_shoot_id=event.shoot_id,
        location=event.location,
        description=event.description,
    )


def _in_window(value: datetime, start: datetime, end: datetime) -> bool:
    return start <= value < end


def merge_events(
    shoots: list[Shoot],
    cached_events: list[CachedCalendarEvent],
    mode: EventFilter | str,
    start: datetime,
    end: datetime,
) -> UnifiedEventList:
    """Merge shoots and cached events in [start, end) into one sorted list.

    - "calendar" drops cache entries that are linked to a shoot.
    - "all" drops cache entries that represent a shoot already in the list,
      so a synced shoot shows up once.
    - Ties on start time keep shoots ahead of calendar events.

    Raises:
        ValueError: for an unknown mode.
        InvalidInterval: if end <= start.
    """
    mode = EventFilter(mode)
    validate_interval(start, end)

    shoot_events: list[ShootEvent] = []
    if mode in (EventFilter.SHOOTS, EventFilter.ALL):
        shoot_events = [
            _shoot_event(s) for s in shoots if _in_window(s.scheduled_at, start, end)
        ]

    calendar_events: list[CalendarEvent] = []
    if mode in (EventFilter.CALENDAR, EventFilter.ALL):
        shown_ids = {e.shoot_id for e in shoot_events}
        shown_external = {
            s.external_event_id for s in shoots
            if s.id in shown_ids and s.external_event_id
        }
        for event in cached_events:
            if not _in_window(event.start_time, start, end):
                continue
            if mode is EventFilter.CALENDAR and event.shoot_id is not None:
                continue
            if mode is EventFilter.ALL and (
                event.shoot_id in shown_ids or event.external_event_id in shown_external
            ):
                continue
            calendar_events.append(_calendar_event(event))

    # sorted() is stable, so shoots placed first stay first on equal start times.
    merged: list[UnifiedEvent] = sorted(
        [*shoot_events, *calendar_events], key=lambda e: e.start_time,
    )
    return UnifiedEventList(
        events=merged,
        filter=mode,
        shoots_count=len(shoot_events),
        calendar_events_count=len(calendar_events),
    )


class UnifiedEventMerger:
    """Fetches shoots and cached events for an owner and merges them."""

    def __init__(
        self, shoot_db: ShootDB, cache_db: CalendarCacheDB, client_db: ClientDB,
    ) -> None:
        self._shoots = shoot_db
        self._cache = cache_db
        self._clients = client_db

    def list_events(
        self,
        owner_email: str,
        mode: EventFilter | str = EventFilter.ALL,
        client_name: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        calendar_id: str = "primary",
    ) -> UnifiedEventList:
        mode = EventFilter(mode)
        default_start, default_end = list_window()
        start = start or default_start
        end = end or default_end
        validate_interval(start, end)

        shoots: list[Shoot] = []
        if mode is not EventFilter.CALENDAR:
            if client_name and client_name != ALL_CLIENTS:
                client = self._clients.resolve_client_by_name(client_name)
                if client is not None:
                    shoots = self._shoots.list_shoots(client_id=client.id, start=start, end=end)
                else:
                    logger.info("Unknown client '%s'; listing no shoots", client_name)
            else:
                shoots = self._shoots.list_shoots(start=start, end=end)

        cached: list[CachedCalendarEvent] = []
        if mode is not EventFilter.SHOOTS:
            cached = self._cache.get_cached_events(owner_email, calendar_id, start=start, end=end)

        result = merge_events(shoots, cached, mode, start, end)
        logger.info(
            "Listed %d event(s) for %s (%s): %d shoots, %d calendar",
            result.total_count, owner_email, mode.value,
            result.shoots_count, result.calendar_events_count,
        )
        return result
