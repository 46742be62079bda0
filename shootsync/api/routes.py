"""
Shoot Sync — HTTP routes.

Thin handlers: parse the request, call one service, render the outcome.
Domain errors are mapped to status codes by the handlers in app.py.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

from shootsync.api.deps import (
    get_calendar_sync,
    get_merger,
    get_owner_email,
    get_scheduler,
)
from shootsync.api.schemas import (
    ConflictCheckRequest,
    ConflictCheckResponse,
    ConflictItem,
    ConflictsResponse,
    CreateShootRequest,
    EventListResponse,
    ShootCreatedResponse,
    SyncRequest,
    SyncResponse,
)
from shootsync.core.calendar_sync import CalendarEventSync
from shootsync.core.errors import InvalidInput
from shootsync.core.event_merger import EventFilter, UnifiedEventMerger
from shootsync.core.shoot_scheduler import ConflictsFoundOutcome, ShootScheduler
from shootsync.core.time_windows import as_utc, parse_instant

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health() -> dict:
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Shoots
# ---------------------------------------------------------------------------


@router.get("/shoots", response_model=EventListResponse, tags=["shoots"])
async def list_shoots(
    client: str | None = Query(default=None),
    filter: str = Query(default=EventFilter.ALL.value),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    owner_email: str = Depends(get_owner_email),
    merger: UnifiedEventMerger = Depends(get_merger),
    calendar_sync: CalendarEventSync = Depends(get_calendar_sync),
):
    """Shoots and calendar events in one time-ordered list."""
    try:
        mode = EventFilter(filter)
    except ValueError as exc:
        raise InvalidInput(f"Unknown filter {filter!r}") from exc
    try:
        start = parse_instant(start_date) if start_date else None
        end = parse_instant(end_date) if end_date else None
    except ValueError as exc:
        raise InvalidInput(f"Invalid date range: {exc}") from exc

    result = merger.list_events(
        owner_email,
        mode,
        client_name=client,
        start=start,
        end=end,
        calendar_id=calendar_sync.calendar_id_for(owner_email),
    )
    return EventListResponse.from_result(result)


@router.post(
    "/shoots",
    response_model=ConflictsResponse | ShootCreatedResponse,
    tags=["shoots"],
)
async def create_shoot(
    body: CreateShootRequest,
    owner_email: str = Depends(get_owner_email),
    scheduler: ShootScheduler = Depends(get_scheduler),
):
    """Create a shoot, or report the calendar conflicts that block it."""
    try:
        request = body.to_domain()
    except ValidationError as exc:
        raise InvalidInput(str(exc)) from exc

    outcome = await scheduler.schedule_shoot(owner_email, request)
    if isinstance(outcome, ConflictsFoundOutcome):
        return ConflictsResponse.from_outcome(outcome)
    return ShootCreatedResponse.from_outcome(outcome)


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


@router.post("/calendar/sync", response_model=SyncResponse, tags=["calendar"])
async def sync_calendar(
    body: SyncRequest | None = None,
    owner_email: str = Depends(get_owner_email),
    calendar_sync: CalendarEventSync = Depends(get_calendar_sync),
):
    """Pull the sync window from the owner's calendar into the cache."""
    clear_cache = body.clear_cache if body else False
    result = await calendar_sync.sync_owner(owner_email, clear_cache=clear_cache)
    if not result.success:
        raise HTTPException(
            status_code=502,
            detail={"error": result.error.kind, "message": str(result.error)},
        )
    return SyncResponse(
        success=True,
        synced_events=result.synced_events,
        deleted_events=result.deleted_events,
        conflicts=result.conflicts,
    )


@router.post("/calendar/conflicts", response_model=ConflictCheckResponse, tags=["calendar"])
async def check_conflicts(
    body: ConflictCheckRequest,
    owner_email: str = Depends(get_owner_email),
    calendar_sync: CalendarEventSync = Depends(get_calendar_sync),
):
    """Which cached events overlap a proposed time slot."""
    result = calendar_sync.check_conflicts_for_proposed_shoot(
        owner_email,
        as_utc(body.start_time),
        as_utc(body.end_time),
        exclude_event_id=body.exclude_event_id,
    )
    conflicts = [ConflictItem.from_snapshot(s) for s in result.snapshots()]
    return ConflictCheckResponse(
        has_conflicts=result.has_conflict,
        conflict_count=len(conflicts),
        conflicts=conflicts,
    )
