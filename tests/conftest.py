"""Shared test fixtures and configuration.

Sets up fake environment variables so shootsync.config doesn't sys.exit(),
and provides common fixtures like temp-file stores and a fake calendar.
"""

import os

# Patch env vars BEFORE any shootsync imports
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("CALENDAR_PROVIDER", "google")
os.environ.setdefault("ALLOWED_OWNER_EMAILS", "")
os.environ.setdefault("SYNC_BEFORE_CONFLICT_CHECK", "false")
os.environ.setdefault("LOG_LEVEL", "INFO")

from datetime import datetime, timezone

import pytest

from shootsync.ports.calendar_port import EventDraft, ProviderEvent

OWNER = "owner@studio.test"


def utc(*args) -> datetime:
    """Aware UTC datetime shorthand: utc(2026, 3, 10, 14, 0)."""
    return datetime(*args, tzinfo=timezone.utc)


class FakeCalendar:
    """In-memory CalendarPort.

    `events` is what the provider reports on pull. Set `pull_error`,
    `create_error` or `delete_error` to make the next calls raise.
    """

    def __init__(self, events=None):
        self.events: list[ProviderEvent] = list(events or [])
        self.pull_error: Exception | None = None
        self.create_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.created: list[EventDraft] = []
        self.deleted: list[str] = []
        self.pull_calls = 0
        self._next_id = 1

    async def pull(self, calendar_id, range_start, range_end):
        self.pull_calls += 1
        if self.pull_error is not None:
            raise self.pull_error
        return [
            ev for ev in self.events
            if ev.start_time < range_end and range_start < ev.end_time
        ]

    async def create(self, calendar_id, draft):
        if self.create_error is not None:
            raise self.create_error
        self.created.append(draft)
        event = ProviderEvent(
            id=f"evt-{self._next_id}",
            title=draft.title,
            start_time=draft.start_time,
            end_time=draft.end_time,
            description=draft.description,
            location=draft.location,
        )
        self._next_id += 1
        self.events.append(event)
        return event

    async def delete(self, calendar_id, event_id):
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(event_id)
        self.events = [ev for ev in self.events if ev.id != event_id]


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path shared by every store in a test."""
    return str(tmp_path / "test_shootsync.db")


@pytest.fixture
def shoot_db(tmp_db_path):
    from shootsync.data.db import ShootDB
    return ShootDB(db_path=tmp_db_path)


@pytest.fixture
def client_db(tmp_db_path):
    from shootsync.data.db import ClientDB
    return ClientDB(db_path=tmp_db_path)


@pytest.fixture
def cache_db(tmp_db_path):
    from shootsync.data.db import CalendarCacheDB
    return CalendarCacheDB(db_path=tmp_db_path)


@pytest.fixture
def integration_db(tmp_db_path):
    from shootsync.data.db import IntegrationDB
    return IntegrationDB(db_path=tmp_db_path)


@pytest.fixture
def fake_calendar():
    return FakeCalendar()


@pytest.fixture
def connected_owner(integration_db):
    """Give OWNER a connected Google integration."""
    return integration_db.upsert_integration(OWNER, "google", '{"token": "t"}')


@pytest.fixture
def calendar_sync(cache_db, shoot_db, integration_db, fake_calendar):
    from shootsync.core.calendar_sync import CalendarEventSync
    return CalendarEventSync(
        cache_db, shoot_db, integration_db,
        adapter_factory=lambda integration: fake_calendar,
        timeout_seconds=5,
    )


@pytest.fixture
def scheduler(shoot_db, client_db, calendar_sync):
    from shootsync.core.shoot_scheduler import ShootScheduler
    return ShootScheduler(shoot_db, client_db, calendar_sync)
