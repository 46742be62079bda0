"""
Shoot Sync — Event Conflict Checker.

Detects double-booking before a shoot is committed. Intervals are half-open
[start, end): an event ending exactly when another starts is not a conflict.

Everything here is read-only over the event cache.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Iterable

from shootsync.core.errors import InvalidInterval
from shootsync.data.models import CachedCalendarEvent, ConflictSnapshot, EventStatus

if TYPE_CHECKING:
    from shootsync.data.db import CalendarCacheDB

logger = logging.getLogger(__name__)


@dataclass
class ConflictResult:
    """Result of a conflict check against cached calendar events."""

    start: datetime
    end: datetime
    conflicting_events: list[CachedCalendarEvent] = field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicting_events)

    def snapshots(self) -> list[ConflictSnapshot]:
        return [to_snapshot(ev) for ev in self.conflicting_events]


def intervals_overlap(s1: datetime, e1: datetime, s2: datetime, e2: datetime) -> bool:
    """True iff [s1, e1) and [s2, e2) share at least one instant."""
    return s1 < e2 and s2 < e1


def validate_interval(start: datetime, end: datetime) -> None:
    """Reject empty and inverted intervals."""
    if end <= start:
        raise InvalidInterval(
            f"end ({end.isoformat()}) must be after start ({start.isoformat()})"
        )


def to_snapshot(event: CachedCalendarEvent) -> ConflictSnapshot:
    return ConflictSnapshot(
        title=event.title,
        start_time=event.start_time,
        end_time=event.end_time,
        event_id=event.external_event_id,
    )


def find_conflicts(
    events: Iterable[CachedCalendarEvent],
    start: datetime,
    end: datetime,
    exclude_event_id: str | None = None,
) -> list[CachedCalendarEvent]:
    """Return the non-cancelled events overlapping [start, end), earliest first.

    Args:
        events: Candidate events, already scoped to one owner and calendar.
        start: Proposed start (aware datetime).
        end: Proposed end (aware datetime), strictly after start.
        exclude_event_id: Event to skip, e.g. the event being rescheduled.
    """
    validate_interval(start, end)

    conflicting = [
        ev for ev in events
        if ev.status is not EventStatus.CANCELLED
        and ev.external_event_id != exclude_event_id
        and intervals_overlap(start, end, ev.start_time, ev.end_time)
    ]
    # sorted() is stable, so equal starts keep cache order
    return sorted(conflicting, key=lambda ev: ev.start_time)


def annotate_overlaps(
    events: list[CachedCalendarEvent],
) -> dict[str, list[ConflictSnapshot]]:
    """Map every event id to snapshots of the other events it overlaps.

    Cancelled events neither conflict nor get annotated. Events with no
    overlap map to an empty list.
    """
    active = sorted(
        (ev for ev in events if ev.status is not EventStatus.CANCELLED),
        key=lambda ev: ev.start_time,
    )
    overlaps: dict[str, list[ConflictSnapshot]] = {ev.external_event_id: [] for ev in events}

    # Sweep in start order: once a later event starts at or after this one's
    # end, no further event can overlap it.
    for i, current in enumerate(active):
        for other in active[i + 1:]:
            if other.start_time >= current.end_time:
                break
            if intervals_overlap(
                current.start_time, current.end_time, other.start_time, other.end_time,
            ):
                overlaps[current.external_event_id].append(to_snapshot(other))
                overlaps[other.external_event_id].append(to_snapshot(current))

    for snapshots in overlaps.values():
        snapshots.sort(key=lambda s: s.start_time)
    return overlaps


def detect_conflicts(
    cache_db: CalendarCacheDB,
    owner_email: str,
    calendar_id: str,
    start: datetime,
    end: datetime,
    exclude_event_id: str | None = None,
) -> ConflictResult:
    """Check a proposed interval against the owner's cached calendar.

    Raises:
        InvalidInterval: if end <= start.
    """
    validate_interval(start, end)
    events = cache_db.get_cached_events(owner_email, calendar_id)
    conflicting = find_conflicts(events, start, end, exclude_event_id=exclude_event_id)

    if conflicting:
        logger.info(
            "%d conflict(s) for %s between %s and %s: %s",
            len(conflicting), owner_email, start.isoformat(), end.isoformat(),
            ", ".join(ev.title for ev in conflicting),
        )
    else:
        logger.debug(
            "No conflicts for %s between %s and %s (checked %d event(s))",
            owner_email, start.isoformat(), end.isoformat(), len(events),
        )
    return ConflictResult(start=start, end=end, conflicting_events=conflicting)
