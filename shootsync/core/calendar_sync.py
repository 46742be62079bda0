"""
Shoot Sync — Calendar Event Sync.

Keeps the local event cache consistent with the external calendar provider:
pulls events into the cache, creates external events for new shoots, and
maintains the weak link between a cached event and the shoot it represents.

Provider failures are data here. A failed pull leaves the cache as it was
(callers may keep serving it) and a failed create comes back as a typed
error instead of an exception, so shoot creation can carry on without it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

from shootsync.config import settings
from shootsync.core.conflict_checker import (
    ConflictResult,
    annotate_overlaps,
    detect_conflicts,
    validate_interval,
)
from shootsync.core.errors import IntegrationNotConnected
from shootsync.core.time_windows import sync_window
from shootsync.data.models import CachedCalendarEvent, EventStatus, SyncStatus
from shootsync.ports.calendar_port import (
    CalendarProviderError,
    EventDraft,
    ProviderEvent,
    UnknownProviderError,
)

if TYPE_CHECKING:
    from shootsync.data.db import CalendarCacheDB, IntegrationDB, ShootDB
    from shootsync.data.models import CalendarIntegration, Shoot
    from shootsync.ports.calendar_port import CalendarPort

logger = logging.getLogger(__name__)

T = TypeVar("T")

AdapterFactory = Callable[["CalendarIntegration"], "CalendarPort"]

ORPHANED_ERROR = "orphaned: event not found"


@dataclass
class SyncResult:
    success: bool
    synced_events: int = 0
    deleted_events: int = 0
    conflicts: int = 0
    error: CalendarProviderError | None = None


@dataclass
class CreateEventResult:
    """Outcome of an external event creation: an id or a typed error, never both."""

    external_event_id: str | None = None
    error: CalendarProviderError | None = None

    @property
    def ok(self) -> bool:
        return self.external_event_id is not None


class LinkOutcome(Enum):
    LINKED = "linked"
    UNCHANGED = "unchanged"
    RELINKED = "relinked"
    MISSING = "missing"


@dataclass
class ReconcileResult:
    cleared_links: int = 0
    restored_links: int = 0
    orphaned_shoots: int = 0


def _default_adapter_factory(integration: CalendarIntegration) -> CalendarPort:
    from shootsync.adapters.calendar_factory import create_calendar_adapter

    return create_calendar_adapter(
        provider=integration.provider,
        credentials_json=integration.credentials_json,
    )


def _to_cache_entry(
    owner_email: str, calendar_id: str, event: ProviderEvent,
) -> CachedCalendarEvent:
    try:
        status = EventStatus(event.status)
    except ValueError:
        status = EventStatus.CONFIRMED
    return CachedCalendarEvent(
        owner_email=owner_email,
        calendar_id=calendar_id,
        external_event_id=event.id,
        title=event.title,
        start_time=event.start_time,
        end_time=event.end_time,
        description=event.description,
        location=event.location,
        attendees=list(event.attendees),
        is_recurring=event.is_recurring,
        recurring_event_id=event.recurring_event_id,
        status=status,
        sync_status=SyncStatus.SYNCED,
        last_modified=event.updated,
    )


class CalendarEventSync:
    """Owner-scoped synchronization between the provider and the local cache."""

    def __init__(
        self,
        cache_db: CalendarCacheDB,
        shoot_db: ShootDB,
        integration_db: IntegrationDB,
        adapter_factory: AdapterFactory | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._cache = cache_db
        self._shoots = shoot_db
        self._integrations = integration_db
        self._adapter_factory = adapter_factory or _default_adapter_factory
        self._timeout = (
            timeout_seconds if timeout_seconds is not None
            else settings.PROVIDER_TIMEOUT_SECONDS
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def get_integration(self, owner_email: str) -> CalendarIntegration | None:
        """The owner's connected integration, or None."""
        integration = self._integrations.get_integration(owner_email)
        if integration is None or not integration.connected:
            return None
        return integration

    def calendar_id_for(self, owner_email: str, calendar_id: str | None = None) -> str:
        if calendar_id:
            return calendar_id
        integration = self.get_integration(owner_email)
        if integration is not None:
            return integration.calendar_id
        return settings.DEFAULT_CALENDAR_ID

    def _port_for(self, owner_email: str) -> CalendarPort:
        integration = self.get_integration(owner_email)
        if integration is None:
            raise IntegrationNotConnected(f"No calendar connected for {owner_email}")
        return self._adapter_factory(integration)

    async def _call(self, operation: str, call: Awaitable[T]) -> T:
        """Await a provider call under the timeout; a timeout is an unknown failure."""
        try:
            return await asyncio.wait_for(call, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise UnknownProviderError(
                f"Calendar {operation} timed out after {self._timeout:g}s"
            ) from exc

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    async def pull_events(
        self,
        owner_email: str,
        calendar_id: str,
        range_start: datetime,
        range_end: datetime,
    ) -> SyncResult:
        """Refresh the cache for [range_start, range_end) from the provider.

        Every reported event is upserted by (owner, calendar, id). Cached
        events starting in the window that the provider no longer reports,
        or reports as cancelled, are removed, and any shoot still pointing
        at them loses its calendar link. Pulling twice with unchanged remote
        data leaves the cache unchanged.

        Raises:
            InvalidInterval: if range_end <= range_start.
            IntegrationNotConnected: if the owner has no calendar.
        """
        validate_interval(range_start, range_end)
        port = self._port_for(owner_email)

        try:
            remote = await self._call(
                "pull", port.pull(calendar_id, range_start, range_end),
            )
        except CalendarProviderError as exc:
            logger.error(
                "Calendar pull failed for %s/%s (%s): %s; keeping cached events",
                owner_email, calendar_id, exc.kind, exc,
            )
            return SyncResult(success=False, error=exc)

        existing = self._cache.get_cached_events(
            owner_email, calendar_id, start=range_start, end=range_end,
        )

        synced = 0
        reported: set[str] = set()
        for event in remote:
            if not event.id:
                logger.warning("Skipping provider event without id: '%s'", event.title)
                continue
            if event.status == EventStatus.CANCELLED.value:
                continue
            self._cache.upsert_cached_event(_to_cache_entry(owner_email, calendar_id, event))
            reported.add(event.id)
            synced += 1

        deleted = 0
        for cached in existing:
            if cached.external_event_id not in reported:
                self.handle_externally_deleted_event(
                    owner_email, cached.external_event_id, calendar_id,
                )
                deleted += 1

        conflicts = self._annotate_conflicts(owner_email, calendar_id)

        logger.info(
            "Calendar pull for %s/%s: %d synced, %d deleted, %d with conflicts",
            owner_email, calendar_id, synced, deleted, conflicts,
        )
        return SyncResult(
            success=True, synced_events=synced, deleted_events=deleted, conflicts=conflicts,
        )

    def _annotate_conflicts(self, owner_email: str, calendar_id: str) -> int:
        """Flag cached events that overlap each other. Returns how many are flagged."""
        events = self._cache.get_cached_events(owner_email, calendar_id)
        overlaps = annotate_overlaps(events)
        flagged = 0
        for event in events:
            snapshots = overlaps.get(event.external_event_id, [])
            if snapshots != event.conflict_details or bool(snapshots) != event.conflict_detected:
                self._cache.set_conflicts(
                    owner_email, event.external_event_id, snapshots, calendar_id,
                )
            if snapshots:
                flagged += 1
        return flagged

    def handle_externally_deleted_event(
        self, owner_email: str, external_event_id: str, calendar_id: str,
    ) -> None:
        """Drop a vanished event from the cache and unlink the shoot that held it.

        The shoot is unlinked when this cache row pointed at it, or when no
        other owner's cache still holds the same event id. A copy of the
        event disappearing from someone else's calendar leaves it alone.
        """
        cached = self._cache.get_event(owner_email, external_event_id, calendar_id)
        self._cache.delete_cached_event(owner_email, external_event_id, calendar_id)

        shoot = None
        if cached is not None and cached.shoot_id is not None:
            linked = self._shoots.get_shoot(cached.shoot_id)
            if linked is not None and linked.external_event_id == external_event_id:
                shoot = linked
        else:
            candidate = self._shoots.get_by_external_event_id(external_event_id)
            if candidate is not None and not self._cache.find_by_external_event_id(
                external_event_id
            ):
                shoot = candidate

        if shoot is not None:
            self._shoots.clear_calendar_sync(shoot.id)
            logger.info(
                "Calendar event %s was removed externally; shoot #%d unlinked",
                external_event_id, shoot.id,
            )

    async def sync_owner(
        self,
        owner_email: str,
        calendar_id: str | None = None,
        clear_cache: bool = False,
    ) -> SyncResult:
        """Pull the default window for the owner and reconcile shoot links.

        With clear_cache, the owner's cache is dropped first (full resync);
        links are restored by the reconciliation that follows.
        """
        integration = self.get_integration(owner_email)
        if integration is None:
            raise IntegrationNotConnected(f"No calendar connected for {owner_email}")
        calendar_id = calendar_id or integration.calendar_id

        if clear_cache:
            self._cache.clear_event_cache(owner_email, calendar_id)

        start, end = sync_window()
        result = await self.pull_events(owner_email, calendar_id, start, end)
        self._integrations.record_sync(
            owner_email, integration.provider,
            error=None if result.success else str(result.error),
        )
        if result.success:
            self.reconcile_links(owner_email, calendar_id, start, end)
        return result

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def check_conflicts_for_proposed_shoot(
        self,
        owner_email: str,
        start: datetime,
        end: datetime,
        calendar_id: str | None = None,
        exclude_event_id: str | None = None,
    ) -> ConflictResult:
        """Conflicts for [start, end) against whatever the cache holds right now."""
        return detect_conflicts(
            self._cache,
            owner_email,
            self.calendar_id_for(owner_email, calendar_id),
            start,
            end,
            exclude_event_id=exclude_event_id,
        )

    # ------------------------------------------------------------------
    # Create & link
    # ------------------------------------------------------------------

    async def create_external_event(
        self, owner_email: str, calendar_id: str, draft: EventDraft,
    ) -> CreateEventResult:
        """Create an event with the provider and cache it.

        Expected provider failures (auth, permission, rate limit, timeout,
        unknown) are returned in the result, not raised.
        """
        port = self._port_for(owner_email)
        try:
            created = await self._call("create", port.create(calendar_id, draft))
        except CalendarProviderError as exc:
            logger.error(
                "Calendar event creation failed for %s (%s): %s",
                owner_email, exc.kind, exc,
            )
            return CreateEventResult(error=exc)

        self._cache.upsert_cached_event(_to_cache_entry(owner_email, calendar_id, created))
        logger.info("Calendar event %s created for '%s'", created.id, draft.title)
        return CreateEventResult(external_event_id=created.id)

    async def delete_external_event(
        self, owner_email: str, calendar_id: str, external_event_id: str,
    ) -> CalendarProviderError | None:
        """Delete an event with the provider, then drop it from the cache.

        The shoot that claimed the event loses its calendar link. On a
        provider failure the typed error is returned and nothing local changes.
        """
        port = self._port_for(owner_email)
        try:
            await self._call("delete", port.delete(calendar_id, external_event_id))
        except CalendarProviderError as exc:
            logger.error(
                "Calendar event deletion failed for %s (%s): %s",
                owner_email, exc.kind, exc,
            )
            return exc

        self._cache.delete_cached_event(owner_email, external_event_id, calendar_id)
        shoot = self._shoots.get_by_external_event_id(external_event_id)
        if shoot is not None:
            self._shoots.clear_calendar_sync(shoot.id)
        logger.info("Calendar event %s deleted for %s", external_event_id, owner_email)
        return None

    def link_event_to_shoot(
        self,
        external_event_id: str,
        shoot_id: int,
        owner_email: str,
        calendar_id: str | None = None,
    ) -> LinkOutcome:
        """Point a cached event at the shoot it represents.

        Relinking the same pair is a no-op. Relinking to a different shoot
        overwrites the old link (last writer wins) and is logged as a
        data-integrity warning for the caller to act on.
        """
        calendar_id = self.calendar_id_for(owner_email, calendar_id)
        cached = self._cache.get_event(owner_email, external_event_id, calendar_id)
        if cached is None:
            logger.warning(
                "Cannot link shoot #%d: event %s not cached for %s/%s",
                shoot_id, external_event_id, owner_email, calendar_id,
            )
            return LinkOutcome.MISSING

        if cached.shoot_id == shoot_id:
            return LinkOutcome.UNCHANGED

        self._cache.set_shoot_link(owner_email, external_event_id, shoot_id, calendar_id)
        if cached.shoot_id is not None:
            logger.warning(
                "Data integrity: calendar event %s relinked from shoot #%d to shoot #%d",
                external_event_id, cached.shoot_id, shoot_id,
            )
            return LinkOutcome.RELINKED

        logger.info("Calendar event %s linked to shoot #%d", external_event_id, shoot_id)
        return LinkOutcome.LINKED

    def reconcile_links(
        self,
        owner_email: str,
        calendar_id: str | None = None,
        range_start: datetime | None = None,
        range_end: datetime | None = None,
    ) -> ReconcileResult:
        """Repair the two-sided shoot <-> event link for one owner's cache.

        - Cached events pointing at a missing shoot, or at a shoot that now
          claims a different event, lose their back-reference.
        - Shoots whose external event is cached but unlinked get linked; a
          shoot left in sync error by a partial create is marked synced.
        - Shoots starting in [range_start, range_end) (default: the sync
          window) whose external event is in no owner's cache are orphans
          and move into sync error.
        """
        calendar_id = self.calendar_id_for(owner_email, calendar_id)
        if range_start is None or range_end is None:
            range_start, range_end = sync_window()
        result = ReconcileResult()
        events = self._cache.get_cached_events(owner_email, calendar_id)
        by_id = {ev.external_event_id: ev for ev in events}

        for event in events:
            if event.shoot_id is None:
                continue
            shoot = self._shoots.get_shoot(event.shoot_id)
            if shoot is None or shoot.external_event_id != event.external_event_id:
                self._cache.set_shoot_link(
                    owner_email, event.external_event_id, None, calendar_id,
                )
                event.shoot_id = None
                result.cleared_links += 1

        for shoot in self._shoots.list_with_external_event():
            event = by_id.get(shoot.external_event_id)
            if event is None:
                if self._is_orphan(shoot, range_start, range_end):
                    self._shoots.mark_sync_error(shoot.id, ORPHANED_ERROR)
                    result.orphaned_shoots += 1
                continue
            if event.shoot_id is None:
                self._cache.set_shoot_link(
                    owner_email, event.external_event_id, shoot.id, calendar_id,
                )
                result.restored_links += 1
            if shoot.sync_status is not SyncStatus.SYNCED:
                self._shoots.mark_synced(shoot.id, event.external_event_id)

        if result.cleared_links or result.restored_links or result.orphaned_shoots:
            logger.info(
                "Reconciled links for %s/%s: %d cleared, %d restored, %d orphaned",
                owner_email, calendar_id, result.cleared_links, result.restored_links,
                result.orphaned_shoots,
            )
        return result

    def _is_orphan(self, shoot: Shoot, range_start: datetime, range_end: datetime) -> bool:
        if not range_start <= shoot.scheduled_at < range_end:
            return False
        if shoot.sync_status is SyncStatus.ERROR and shoot.sync_error == ORPHANED_ERROR:
            return False
        return not self._cache.find_by_external_event_id(shoot.external_event_id)
