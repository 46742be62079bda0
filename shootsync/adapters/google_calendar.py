"""Google Calendar adapter — implements CalendarPort for Google Calendar API.

All Google-specific logic lives here. Core modules never import this directly;
they depend on the CalendarPort protocol. The API client is synchronous, so
every request runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from shootsync.config import settings
from shootsync.data.models import Attendee
from shootsync.integrations.google_auth import get_calendar_service_for_user
from shootsync.ports.calendar_port import (
    AuthExpiredError,
    CalendarProviderError,
    EventDraft,
    PermissionDeniedError,
    ProviderEvent,
    RateLimitedError,
    UnknownProviderError,
)

logger = logging.getLogger(__name__)

_RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded", "quotaExceeded"}
_PAGE_SIZE = 250


def _parse_google_time(value: dict) -> datetime:
    """Parse an event start/end object; all-day dates become local midnight."""
    if value.get("dateTime"):
        parsed = datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=ZoneInfo(value.get("timeZone") or settings.TIMEZONE))
        return parsed.astimezone(timezone.utc)
    day = date.fromisoformat(value["date"])
    return datetime.combine(day, time.min, tzinfo=ZoneInfo(settings.TIMEZONE)).astimezone(
        timezone.utc
    )


def _normalize_event(item: dict) -> ProviderEvent:
    """Normalize a Google API event resource to a ProviderEvent."""
    updated = None
    if item.get("updated"):
        updated = datetime.fromisoformat(item["updated"].replace("Z", "+00:00"))

    return ProviderEvent(
        id=item.get("id", ""),
        title=item.get("summary") or "(no title)",
        start_time=_parse_google_time(item.get("start", {})),
        end_time=_parse_google_time(item.get("end", {})),
        description=item.get("description"),
        location=item.get("location"),
        status=item.get("status", "confirmed"),
        attendees=[
            Attendee(
                email=a.get("email", ""),
                display_name=a.get("displayName"),
                response_status=a.get("responseStatus"),
            )
            for a in item.get("attendees", [])
        ],
        recurring_event_id=item.get("recurringEventId"),
        updated=updated,
    )


def _build_event_body(draft: EventDraft) -> dict:
    """Construct a Google Calendar API event body from an EventDraft."""
    body: dict = {
        "summary": draft.title,
        "description": draft.description,
        "location": draft.location,
        "start": {
            "dateTime": draft.start_time.isoformat(),
            "timeZone": settings.TIMEZONE,
        },
        "end": {
            "dateTime": draft.end_time.isoformat(),
            "timeZone": settings.TIMEZONE,
        },
    }
    if draft.attendees:
        body["attendees"] = [
            {"email": a.email, "displayName": a.display_name} if a.display_name
            else {"email": a.email}
            for a in draft.attendees
        ]
    return body


def _error_reasons(exc: HttpError) -> set[str]:
    details = getattr(exc, "error_details", None) or []
    if isinstance(details, list):
        return {d.get("reason", "") for d in details if isinstance(d, dict)}
    return set()


def _translate_error(exc: Exception, operation: str) -> CalendarProviderError:
    """Map a Google client failure onto the provider error taxonomy."""
    if isinstance(exc, CalendarProviderError):
        return exc
    if isinstance(exc, RefreshError):
        return AuthExpiredError(f"Google {operation} failed: token refresh rejected")
    if isinstance(exc, HttpError):
        status = exc.resp.status
        if status == 401:
            return AuthExpiredError(f"Google {operation} unauthorized; reconnect the calendar")
        if status == 429 or (status == 403 and _error_reasons(exc) & _RATE_LIMIT_REASONS):
            return RateLimitedError(f"Google {operation} rate limited")
        if status == 403:
            return PermissionDeniedError(f"Google {operation} forbidden: insufficient permissions")
        return UnknownProviderError(f"Google {operation} failed with HTTP {status}")
    return UnknownProviderError(f"Google {operation} failed: {exc}")


class GoogleCalendarAdapter:
    """Google Calendar implementation of CalendarPort."""

    def __init__(self, token_json: str | None = None) -> None:
        self._token_json = token_json

    def _list_all(self, calendar_id: str, range_start: datetime, range_end: datetime) -> list[dict]:
        service = get_calendar_service_for_user(self._token_json)
        items: list[dict] = []
        page_token = None
        while True:
            response = (
                service.events()
                .list(
                    calendarId=calendar_id,
                    timeMin=range_start.isoformat(),
                    timeMax=range_end.isoformat(),
                    singleEvents=True,          # expand recurring events
                    orderBy="startTime",
                    maxResults=_PAGE_SIZE,
                    pageToken=page_token,
                )
                .execute()
            )
            items.extend(response.get("items", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return items

    async def pull(
        self, calendar_id: str, range_start: datetime, range_end: datetime
    ) -> list[ProviderEvent]:
        try:
            items = await asyncio.to_thread(self._list_all, calendar_id, range_start, range_end)
        except Exception as exc:
            logger.error("Google Calendar API error (pull %s): %s", calendar_id, exc)
            raise _translate_error(exc, "pull") from exc

        events = []
        for item in items:
            if not item.get("start") or not item.get("end"):
                logger.warning("Skipping Google event with incomplete times: %s", item.get("id"))
                continue
            events.append(_normalize_event(item))

        logger.info(
            "Pulled %d event(s) from Google calendar %s between %s and %s",
            len(events), calendar_id, range_start.isoformat(), range_end.isoformat(),
        )
        return events

    async def create(self, calendar_id: str, draft: EventDraft) -> ProviderEvent:
        body = _build_event_body(draft)

        def _insert() -> dict:
            service = get_calendar_service_for_user(self._token_json)
            return (
                service.events()
                .insert(calendarId=calendar_id, body=body, sendUpdates="all")
                .execute()
            )

        try:
            created = await asyncio.to_thread(_insert)
        except Exception as exc:
            logger.error("Google Calendar API error (create): %s", exc)
            raise _translate_error(exc, "create") from exc

        if not created.get("id"):
            raise UnknownProviderError("Google created the event but returned no id")

        logger.info(
            "Event created: '%s' at %s (%s)",
            draft.title, draft.start_time.isoformat(), created.get("htmlLink", ""),
        )
        return _normalize_event(created)

    async def delete(self, calendar_id: str, event_id: str) -> None:
        def _delete() -> None:
            service = get_calendar_service_for_user(self._token_json)
            service.events().delete(
                calendarId=calendar_id, eventId=event_id, sendUpdates="all",
            ).execute()

        try:
            await asyncio.to_thread(_delete)
        except HttpError as exc:
            if exc.resp.status in (404, 410):
                logger.info("Google event %s already gone from %s", event_id, calendar_id)
                return
            logger.error("Google Calendar API error (delete): %s", exc)
            raise _translate_error(exc, "delete") from exc
        except Exception as exc:
            logger.error("Google Calendar API error (delete): %s", exc)
            raise _translate_error(exc, "delete") from exc

        logger.info("Event deleted: %s from %s", event_id, calendar_id)
