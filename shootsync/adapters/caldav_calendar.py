"""CalDAV calendar adapter — implements CalendarPort for CalDAV servers.

Supports iCloud, Nextcloud, Fastmail, and any CalDAV-compliant server.
Uses the caldav library (sync) wrapped with asyncio.to_thread for async
compatibility.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

import caldav
from caldav.lib.error import AuthorizationError, NotFoundError
from icalendar import Calendar as iCalendar
from icalendar import Event as iEvent
from icalendar import vCalAddress

from shootsync.config import settings
from shootsync.data.models import Attendee
from shootsync.ports.calendar_port import (
    AuthExpiredError,
    CalendarProviderError,
    EventDraft,
    ProviderEvent,
    UnknownProviderError,
)

logger = logging.getLogger(__name__)

# RFC 5545 PARTSTAT -> provider-neutral attendee response
_PARTSTAT = {
    "NEEDS-ACTION": "needsAction",
    "ACCEPTED": "accepted",
    "DECLINED": "declined",
    "TENTATIVE": "tentative",
}


def _load_credentials(cred_json: str | None) -> dict:
    """Per-owner credentials, falling back to the server configured in settings."""
    creds = {
        "url": settings.CALDAV_URL,
        "username": settings.CALDAV_USERNAME,
        "password": settings.CALDAV_PASSWORD,
        "calendar_name": settings.CALDAV_CALENDAR_NAME,
    }
    if cred_json:
        try:
            stored = json.loads(cred_json)
        except ValueError as exc:
            raise AuthExpiredError(f"Stored CalDAV credentials are invalid: {exc}") from exc
        creds.update({k: v for k, v in stored.items() if v})
    if not creds["url"]:
        raise AuthExpiredError("No CalDAV server configured for this owner")
    return creds


def _get_calendar(creds: dict, calendar_id: str) -> caldav.Calendar:
    """Connect to the CalDAV server and return the requested calendar.

    "primary" means the configured calendar name, or the first calendar.
    """
    client = caldav.DAVClient(
        url=creds["url"],
        username=creds["username"],
        password=creds["password"],
    )
    principal = client.principal()
    calendars = principal.calendars()

    if not calendars:
        raise UnknownProviderError("No calendars found on the CalDAV server.")

    wanted = calendar_id if calendar_id != "primary" else creds.get("calendar_name")
    if wanted:
        for cal in calendars:
            if wanted in (cal.name, str(cal.url)):
                return cal
        raise UnknownProviderError(
            f"Calendar '{wanted}' not found. Available: {[c.name for c in calendars]}"
        )

    return calendars[0]


def _to_utc(value: date | datetime) -> datetime:
    """Normalize a DTSTART/DTEND value; floating and all-day times are local."""
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo(settings.TIMEZONE))
    return value.astimezone(timezone.utc)


def _parse_attendee(value) -> Attendee:
    email = str(value)
    if email.lower().startswith("mailto:"):
        email = email[len("mailto:"):]
    params = getattr(value, "params", {})
    partstat = params.get("PARTSTAT")
    return Attendee(
        email=email,
        display_name=params.get("CN"),
        response_status=_PARTSTAT.get(str(partstat).upper()) if partstat else None,
    )


def _parse_vevent(component) -> ProviderEvent | None:
    """Convert one VEVENT component to a ProviderEvent, or None if it has no start."""
    dtstart = component.get("dtstart")
    if dtstart is None:
        return None
    start = _to_utc(dtstart.dt)

    dtend = component.get("dtend")
    if dtend is not None:
        end = _to_utc(dtend.dt)
    elif component.get("duration") is not None:
        end = start + component.get("duration").dt
    else:
        return None

    uid = str(component.get("uid", ""))
    recurrence_id = component.get("recurrence-id")
    recurring_event_id = None
    event_id = uid
    if recurrence_id is not None:
        # Expanded instances share the series UID.
        recurring_event_id = uid
        event_id = f"{uid}:{_to_utc(recurrence_id.dt).strftime('%Y%m%dT%H%M%SZ')}"

    attendees = component.get("attendee") or []
    if not isinstance(attendees, list):
        attendees = [attendees]

    updated = component.get("last-modified") or component.get("dtstamp")

    return ProviderEvent(
        id=event_id,
        title=str(component.get("summary", "(no title)")),
        start_time=start,
        end_time=end,
        description=str(component["description"]) if component.get("description") else None,
        location=str(component["location"]) if component.get("location") else None,
        status=str(component.get("status", "confirmed")).lower(),
        attendees=[_parse_attendee(a) for a in attendees],
        recurring_event_id=recurring_event_id,
        updated=_to_utc(updated.dt) if updated is not None else None,
    )


def _parse_resource(resource: caldav.Event) -> list[ProviderEvent]:
    """Parse every VEVENT in a CalDAV resource."""
    try:
        cal = iCalendar.from_ical(resource.data)
    except ValueError as exc:
        logger.warning("Skipping unparseable CalDAV resource %s: %s", resource.url, exc)
        return []

    events = []
    for component in cal.walk("VEVENT"):
        parsed = _parse_vevent(component)
        if parsed is not None:
            events.append(parsed)
    return events


def _build_vevent(draft: EventDraft, uid: str) -> str:
    """Build an iCalendar VEVENT string."""
    cal = iCalendar()
    cal.add("prodid", "-//Shoot Sync//EN")
    cal.add("version", "2.0")

    event = iEvent()
    event.add("uid", uid)
    event.add("summary", draft.title)
    event.add("description", draft.description)
    if draft.location:
        event.add("location", draft.location)
    event.add("dtstart", draft.start_time)
    event.add("dtend", draft.end_time)
    event.add("dtstamp", datetime.now(timezone.utc))

    for guest in draft.attendees:
        attendee = vCalAddress(f"mailto:{guest.email}")
        attendee.params["ROLE"] = "REQ-PARTICIPANT"
        if guest.display_name:
            attendee.params["CN"] = guest.display_name
        event.add("attendee", attendee)

    cal.add_component(event)
    return cal.to_ical().decode("utf-8")


def _translate_error(exc: Exception, operation: str) -> CalendarProviderError:
    if isinstance(exc, CalendarProviderError):
        return exc
    if isinstance(exc, AuthorizationError):
        return AuthExpiredError(f"CalDAV {operation} unauthorized; check the stored credentials")
    return UnknownProviderError(f"CalDAV {operation} failed: {exc}")


class CalDAVCalendarAdapter:
    """CalDAV implementation of CalendarPort."""

    def __init__(self, cred_json: str | None = None) -> None:
        self._cred_json = cred_json

    def _search(
        self, calendar_id: str, range_start: datetime, range_end: datetime
    ) -> list[ProviderEvent]:
        cal = _get_calendar(_load_credentials(self._cred_json), calendar_id)
        results = cal.search(start=range_start, end=range_end, event=True, expand=True)
        events: list[ProviderEvent] = []
        for resource in results:
            events.extend(_parse_resource(resource))
        return events

    async def pull(
        self, calendar_id: str, range_start: datetime, range_end: datetime
    ) -> list[ProviderEvent]:
        try:
            events = await asyncio.to_thread(self._search, calendar_id, range_start, range_end)
        except Exception as exc:
            logger.error("CalDAV error (pull %s): %s", calendar_id, exc)
            raise _translate_error(exc, "pull") from exc

        logger.info(
            "Pulled %d CalDAV event(s) from %s between %s and %s",
            len(events), calendar_id, range_start.isoformat(), range_end.isoformat(),
        )
        return events

    async def create(self, calendar_id: str, draft: EventDraft) -> ProviderEvent:
        uid = str(uuid.uuid4())
        vcal = _build_vevent(draft, uid)

        def _save() -> None:
            cal = _get_calendar(_load_credentials(self._cred_json), calendar_id)
            cal.save_event(vcal)

        try:
            await asyncio.to_thread(_save)
        except Exception as exc:
            logger.error("CalDAV error (create): %s", exc)
            raise _translate_error(exc, "create") from exc

        logger.info("CalDAV event created: '%s' at %s", draft.title, draft.start_time.isoformat())
        return ProviderEvent(
            id=uid,
            title=draft.title,
            start_time=draft.start_time,
            end_time=draft.end_time,
            description=draft.description or None,
            location=draft.location or None,
            attendees=list(draft.attendees),
        )

    async def delete(self, calendar_id: str, event_id: str) -> None:
        def _delete() -> bool:
            cal = _get_calendar(_load_credentials(self._cred_json), calendar_id)
            try:
                resource = cal.event_by_uid(event_id)
            except NotFoundError:
                return False
            resource.delete()
            return True

        try:
            deleted = await asyncio.to_thread(_delete)
        except Exception as exc:
            logger.error("CalDAV error (delete): %s", exc)
            raise _translate_error(exc, "delete") from exc

        if deleted:
            logger.info("CalDAV event deleted: %s from %s", event_id, calendar_id)
        else:
            logger.info("CalDAV event %s already gone from %s", event_id, calendar_id)
