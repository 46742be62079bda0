"""
Shoot Sync — Shoot Scheduler.

Orchestrates "create a shoot":
validate input -> check conflicts -> persist the shoot -> create the
external calendar event -> link both sides -> return a structured outcome.

The shoot row is the source of truth. Once it is written it is never rolled
back; a calendar failure only changes its sync status and the message the
caller sees.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError, field_validator

from shootsync.config import settings
from shootsync.core.errors import InvalidInput, NotFound
from shootsync.core.time_windows import parse_local_datetime, sync_window
from shootsync.data.models import ConflictSnapshot, Shoot
from shootsync.ports.calendar_port import EventDraft

if TYPE_CHECKING:
    from shootsync.core.calendar_sync import CalendarEventSync
    from shootsync.data.db import ClientDB, ShootDB

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class ShootRequest(BaseModel):
    """A request to schedule one shoot.

    JSON example:
    {
        "title": "Spring lookbook",
        "client_name": "Acme Bakery",
        "date": "2025-03-14",
        "time": "14:30",
        "duration": 60,
        "location": "Studio B"
    }
    """
    title: str
    client_name: str
    date: str          # ISO format YYYY-MM-DD, local timezone
    time: str          # HH:MM in 24h format
    duration: int      # minutes
    location: str
    notes: str | None = None
    force_create: bool = False
    create_calendar_event: bool = True

    @field_validator("title", "client_name", "location")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("duration")
    @classmethod
    def positive_duration(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("duration must be greater than zero")
        return v


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class SyncOutcome(Enum):
    SYNCED = "synced"
    NOT_SYNCED = "not_synced"
    SYNC_FAILED = "sync_failed"


_MESSAGES = {
    SyncOutcome.SYNCED: "Shoot created and synced to your calendar.",
    SyncOutcome.NOT_SYNCED: "Shoot created. It was not added to a calendar.",
    SyncOutcome.SYNC_FAILED: (
        "Shoot created, but the calendar event could not be created. "
        "Add it to your calendar manually once the connection is working."
    ),
}


@dataclass
class ShootDraft:
    """A validated shoot that has not been persisted."""

    title: str
    client_id: int
    client_name: str
    scheduled_at: datetime
    duration: int
    location: str
    notes: str | None = None

    @property
    def end_time(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration)


@dataclass
class ConflictsFoundOutcome:
    """Conflicts were found; nothing was written."""

    draft: ShootDraft
    conflicts: list[ConflictSnapshot] = field(default_factory=list)

    @property
    def message(self) -> str:
        count = len(self.conflicts)
        noun = "event" if count == 1 else "events"
        return f"This shoot overlaps {count} calendar {noun}. Create it anyway?"


@dataclass
class ShootCreatedOutcome:
    shoot: Shoot
    sync_outcome: SyncOutcome
    sync_error: str | None = None

    @property
    def message(self) -> str:
        return _MESSAGES[self.sync_outcome]


ScheduleOutcome = ConflictsFoundOutcome | ShootCreatedOutcome


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


def build_event_draft(draft: ShootDraft) -> EventDraft:
    """The external calendar event that represents a shoot."""
    description = f"Content shoot for {draft.client_name}"
    if draft.notes:
        description += f"\n\n{draft.notes}"
    return EventDraft(
        title=f"📸 {draft.title}",
        start_time=draft.scheduled_at,
        end_time=draft.end_time,
        description=description,
        location=draft.location,
    )


class ShootScheduler:
    """Creates shoots and keeps their calendar events in step."""

    def __init__(
        self,
        shoot_db: ShootDB,
        client_db: ClientDB,
        calendar_sync: CalendarEventSync,
    ) -> None:
        self._shoots = shoot_db
        self._clients = client_db
        self._sync = calendar_sync
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, owner_email: str, calendar_id: str) -> asyncio.Lock:
        """One lock per (owner, calendar), dropped once no request holds or awaits it."""
        key = (owner_email, calendar_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def validate(self, request: ShootRequest) -> ShootDraft:
        """Resolve the client and the UTC start time.

        Raises:
            InvalidInput: if the date or time doesn't parse.
            NotFound: if the client doesn't exist.
        """
        try:
            scheduled_at = parse_local_datetime(request.date, request.time)
        except ValueError as exc:
            raise InvalidInput(
                f"Invalid date/time {request.date!r} {request.time!r}: {exc}"
            ) from exc

        client = self._clients.resolve_client_by_name(request.client_name)
        if client is None:
            raise NotFound(f"Client {request.client_name!r} not found")

        return ShootDraft(
            title=request.title,
            client_id=client.id,
            client_name=client.name,
            scheduled_at=scheduled_at,
            duration=request.duration,
            location=request.location,
            notes=request.notes,
        )

    async def schedule_shoot(
        self, owner_email: str, request: ShootRequest | dict,
    ) -> ScheduleOutcome:
        """Schedule a shoot for `owner_email`.

        Raises:
            InvalidInput: if the request fails validation.
            NotFound: if the client doesn't exist.
        """
        if isinstance(request, dict):
            try:
                request = ShootRequest(**request)
            except ValidationError as exc:
                raise InvalidInput(str(exc)) from exc

        draft = self.validate(request)
        integration = self._sync.get_integration(owner_email)
        calendar_id = self._sync.calendar_id_for(owner_email)

        async with self._lock_for(owner_email, calendar_id):
            if not request.force_create:
                if settings.SYNC_BEFORE_CONFLICT_CHECK and integration is not None:
                    await self._refresh_cache(owner_email, calendar_id)

                result = self._sync.check_conflicts_for_proposed_shoot(
                    owner_email, draft.scheduled_at, draft.end_time, calendar_id,
                )
                if result.has_conflict:
                    logger.info(
                        "Shoot '%s' at %s blocked by %d conflict(s) for %s",
                        draft.title, draft.scheduled_at.isoformat(),
                        len(result.conflicting_events), owner_email,
                    )
                    return ConflictsFoundOutcome(draft=draft, conflicts=result.snapshots())

            shoot = self._shoots.create_shoot(
                title=draft.title,
                client_id=draft.client_id,
                scheduled_at=draft.scheduled_at,
                duration=draft.duration,
                location=draft.location,
                notes=draft.notes,
            )

            if integration is None or not request.create_calendar_event:
                return ShootCreatedOutcome(shoot=shoot, sync_outcome=SyncOutcome.NOT_SYNCED)

            return await self._sync_new_shoot(owner_email, calendar_id, shoot, draft)

    async def _refresh_cache(self, owner_email: str, calendar_id: str) -> None:
        start, end = sync_window()
        result = await self._sync.pull_events(owner_email, calendar_id, start, end)
        if not result.success:
            logger.warning(
                "Pre-check sync failed for %s (%s); checking against cached events",
                owner_email, result.error.kind if result.error else "unknown",
            )

    async def _sync_new_shoot(
        self, owner_email: str, calendar_id: str, shoot: Shoot, draft: ShootDraft,
    ) -> ShootCreatedOutcome:
        try:
            created = await self._sync.create_external_event(
                owner_email, calendar_id, build_event_draft(draft),
            )
            if not created.ok:
                reason = f"{created.error.kind}: {created.error}"
                self._shoots.mark_sync_error(shoot.id, reason)
                return ShootCreatedOutcome(
                    shoot=self._shoots.get_shoot(shoot.id) or shoot,
                    sync_outcome=SyncOutcome.SYNC_FAILED,
                    sync_error=reason,
                )

            self._shoots.mark_synced(shoot.id, created.external_event_id)
            self._sync.link_event_to_shoot(
                created.external_event_id, shoot.id, owner_email, calendar_id,
            )
        except Exception as exc:
            logger.exception("Unexpected error syncing shoot #%d", shoot.id)
            reason = f"unexpected: {exc}"
            self._shoots.mark_sync_error(shoot.id, reason)
            return ShootCreatedOutcome(
                shoot=self._shoots.get_shoot(shoot.id) or shoot,
                sync_outcome=SyncOutcome.SYNC_FAILED,
                sync_error=reason,
            )

        return ShootCreatedOutcome(
            shoot=self._shoots.get_shoot(shoot.id) or shoot,
            sync_outcome=SyncOutcome.SYNCED,
        )
