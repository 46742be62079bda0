"""
Shoot Sync — HTTP request/response schemas.

Wire format is camelCase; Python attributes stay snake_case.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shootsync.core.event_merger import CalendarEvent, ShootEvent, UnifiedEventList
from shootsync.core.shoot_scheduler import (
    ConflictsFoundOutcome,
    ShootCreatedOutcome,
    ShootRequest,
)
from shootsync.data.models import Attendee, ConflictSnapshot, Shoot


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Requests


class CreateShootRequest(CamelModel):
    title: str
    client_name: str
    date: str
    time: str
    duration: int
    location: str
    notes: str | None = None
    force_create: bool = False
    create_calendar_event: bool = True

    def to_domain(self) -> ShootRequest:
        return ShootRequest(**self.model_dump())


class SyncRequest(CamelModel):
    clear_cache: bool = False


class ConflictCheckRequest(CamelModel):
    start_time: datetime
    end_time: datetime
    exclude_event_id: str | None = None


# Responses


class ConflictItem(CamelModel):
    title: str
    start_time: datetime
    end_time: datetime
    event_id: str = ""

    @classmethod
    def from_snapshot(cls, snapshot: ConflictSnapshot) -> ConflictItem:
        return cls(
            title=snapshot.title,
            start_time=snapshot.start_time,
            end_time=snapshot.end_time,
            event_id=snapshot.event_id,
        )


class AttendeeItem(CamelModel):
    email: str
    display_name: str | None = None
    response_status: str | None = None

    @classmethod
    def from_attendee(cls, attendee: Attendee) -> AttendeeItem:
        return cls(
            email=attendee.email,
            display_name=attendee.display_name,
            response_status=attendee.response_status,
        )


class ShootResponse(CamelModel):
    id: int
    title: str
    client_id: int
    client_name: str | None = None
    scheduled_at: datetime
    end_time: datetime
    duration: int
    location: str
    status: str
    notes: str | None = None
    external_event_id: str | None = None
    sync_status: str
    last_sync_at: datetime | None = None
    sync_error: str | None = None
    post_idea_count: int = 0

    @classmethod
    def from_shoot(cls, shoot: Shoot) -> ShootResponse:
        return cls(
            id=shoot.id,
            title=shoot.title,
            client_id=shoot.client_id,
            client_name=shoot.client_name,
            scheduled_at=shoot.scheduled_at,
            end_time=shoot.end_time,
            duration=shoot.duration,
            location=shoot.location,
            status=shoot.status.value,
            notes=shoot.notes,
            external_event_id=shoot.external_event_id,
            sync_status=shoot.sync_status.value,
            last_sync_at=shoot.last_sync_at,
            sync_error=shoot.sync_error,
            post_idea_count=shoot.post_idea_count,
        )


class ShootDataResponse(CamelModel):
    """The unpersisted shoot returned alongside conflicts."""

    title: str
    client_name: str
    scheduled_at: datetime
    end_time: datetime
    duration: int
    location: str
    notes: str | None = None


class ConflictsResponse(CamelModel):
    success: bool = False
    has_conflicts: bool = True
    conflicts: list[ConflictItem]
    message: str
    shoot_data: ShootDataResponse

    @classmethod
    def from_outcome(cls, outcome: ConflictsFoundOutcome) -> ConflictsResponse:
        draft = outcome.draft
        return cls(
            conflicts=[ConflictItem.from_snapshot(c) for c in outcome.conflicts],
            message=outcome.message,
            shoot_data=ShootDataResponse(
                title=draft.title,
                client_name=draft.client_name,
                scheduled_at=draft.scheduled_at,
                end_time=draft.end_time,
                duration=draft.duration,
                location=draft.location,
                notes=draft.notes,
            ),
        )


class ShootCreatedResponse(CamelModel):
    success: bool = True
    shoot: ShootResponse
    sync_outcome: str
    sync_error: str | None = None
    message: str

    @classmethod
    def from_outcome(cls, outcome: ShootCreatedOutcome) -> ShootCreatedResponse:
        return cls(
            shoot=ShootResponse.from_shoot(outcome.shoot),
            sync_outcome=outcome.sync_outcome.value,
            sync_error=outcome.sync_error,
            message=outcome.message,
        )


class UnifiedEventItem(CamelModel):
    kind: str
    title: str
    start_time: datetime
    end_time: datetime
    duration: int
    location: str | None = None
    # shoot
    shoot_id: int | None = None
    client: str | None = None
    status: str | None = None
    sync_status: str | None = None
    post_idea_count: int | None = None
    notes: str | None = None
    # calendar
    external_event_id: str | None = None
    attendees: list[AttendeeItem] = Field(default_factory=list)
    is_recurring: bool | None = None
    conflict_detected: bool | None = None
    linked_shoot_id: int | None = None
    description: str | None = None

    @classmethod
    def from_event(cls, event: ShootEvent | CalendarEvent) -> UnifiedEventItem:
        common = dict(
            kind=event.kind,
            title=event.title,
            start_time=event.start_time,
            end_time=event.end_time,
            duration=event.duration,
            location=event.location,
        )
        if isinstance(event, ShootEvent):
            return cls(
                **common,
                shoot_id=event.shoot_id,
                client=event.client,
                status=event.status,
                sync_status=event.sync_status,
                post_idea_count=event.post_idea_count,
                notes=event.notes,
            )
        return cls(
            **common,
            external_event_id=event.external_event_id,
            attendees=[AttendeeItem.from_attendee(a) for a in event.attendees],
            is_recurring=event.is_recurring,
            conflict_detected=event.conflict_detected,
            linked_shoot_id=event.linked_shoot_id,
            description=event.description,
        )


class EventListResponse(CamelModel):
    success: bool = True
    events: list[UnifiedEventItem]
    total_count: int
    filter: str
    shoots_count: int
    calendar_events_count: int

    @classmethod
    def from_result(cls, result: UnifiedEventList) -> EventListResponse:
        return cls(
            events=[UnifiedEventItem.from_event(e) for e in result.events],
            total_count=result.total_count,
            filter=result.filter.value,
            shoots_count=result.shoots_count,
            calendar_events_count=result.calendar_events_count,
        )


class SyncResponse(CamelModel):
    success: bool
    synced_events: int
    deleted_events: int
    conflicts: int


class ConflictCheckResponse(CamelModel):
    has_conflicts: bool
    conflict_count: int
    conflicts: list[ConflictItem]
