"""Tests for shootsync.data.db — SQLite stores for shoots, clients, cache and integrations."""

from datetime import datetime

import pytest

from conftest import OWNER, utc
from shootsync.data.db import from_db_time, to_db_time
from shootsync.data.models import (
    Attendee,
    CachedCalendarEvent,
    ConflictSnapshot,
    EventStatus,
    ShootStatus,
    SyncStatus,
)


def _cached(ext_id="evt-1", start=None, end=None, **kwargs):
    start = start or utc(2026, 3, 10, 14, 0)
    return CachedCalendarEvent(
        owner_email=kwargs.pop("owner_email", OWNER),
        calendar_id=kwargs.pop("calendar_id", "primary"),
        external_event_id=ext_id,
        title=kwargs.pop("title", "Client Call"),
        start_time=start,
        end_time=end or start.replace(hour=start.hour + 1),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Time serialization
# ---------------------------------------------------------------------------


class TestDbTime:
    def test_round_trips_aware_datetime(self):
        value = utc(2026, 3, 10, 14, 30)
        assert from_db_time(to_db_time(value)) == value

    def test_truncates_to_seconds(self):
        assert to_db_time(utc(2026, 3, 10, 14, 30).replace(microsecond=500)) == (
            "2026-03-10T14:30:00+00:00"
        )

    def test_rejects_naive_datetime(self):
        with pytest.raises(ValueError):
            to_db_time(datetime(2026, 3, 10, 14, 30))

    def test_none_passthrough(self):
        assert to_db_time(None) is None
        assert from_db_time(None) is None


# ---------------------------------------------------------------------------
# ClientDB
# ---------------------------------------------------------------------------


class TestClientDB:
    def test_resolve_is_case_insensitive(self, client_db):
        added = client_db.add_client("Acme Bakery")
        found = client_db.resolve_client_by_name("  acme BAKERY ")
        assert found is not None
        assert found.id == added.id
        assert found.name == "Acme Bakery"

    def test_unknown_client(self, client_db):
        assert client_db.resolve_client_by_name("Nobody") is None


# ---------------------------------------------------------------------------
# ShootDB
# ---------------------------------------------------------------------------


class TestShootDB:
    @pytest.fixture
    def client(self, client_db):
        return client_db.add_client("Acme Bakery")

    def test_create_defaults(self, shoot_db, client):
        shoot = shoot_db.create_shoot(
            "Lookbook", client.id, utc(2026, 3, 10, 14, 30), 60, "Studio B",
        )
        assert shoot.status is ShootStatus.SCHEDULED
        assert shoot.sync_status is SyncStatus.PENDING
        assert shoot.external_event_id is None
        assert shoot.client_name == "Acme Bakery"
        assert shoot.end_time == utc(2026, 3, 10, 15, 30)

    def test_list_filters_by_window_and_client(self, shoot_db, client_db, client):
        other = client_db.add_client("Other Co")
        shoot_db.create_shoot("A", client.id, utc(2026, 3, 10, 9, 0), 30, "X")
        shoot_db.create_shoot("B", other.id, utc(2026, 3, 11, 9, 0), 30, "X")
        shoot_db.create_shoot("C", client.id, utc(2026, 3, 20, 9, 0), 30, "X")

        in_window = shoot_db.list_shoots(start=utc(2026, 3, 10), end=utc(2026, 3, 20, 9, 0))
        assert [s.title for s in in_window] == ["A", "B"]

        acme = shoot_db.list_shoots(client_id=client.id)
        assert [s.title for s in acme] == ["A", "C"]

    def test_mark_synced_then_error_keeps_orphan_id(self, shoot_db, client):
        shoot = shoot_db.create_shoot("A", client.id, utc(2026, 3, 10, 9, 0), 30, "X")
        shoot_db.mark_synced(shoot.id, "evt-9")
        synced = shoot_db.get_shoot(shoot.id)
        assert synced.sync_status is SyncStatus.SYNCED
        assert synced.external_event_id == "evt-9"
        assert synced.last_sync_at is not None

        shoot_db.mark_sync_error(shoot.id, "auth_expired: token revoked")
        errored = shoot_db.get_shoot(shoot.id)
        assert errored.sync_status is SyncStatus.ERROR
        assert errored.sync_error == "auth_expired: token revoked"
        assert errored.external_event_id == "evt-9"

    def test_clear_calendar_sync(self, shoot_db, client):
        shoot = shoot_db.create_shoot("A", client.id, utc(2026, 3, 10, 9, 0), 30, "X")
        shoot_db.mark_synced(shoot.id, "evt-9")
        shoot_db.clear_calendar_sync(shoot.id)
        cleared = shoot_db.get_shoot(shoot.id)
        assert cleared.external_event_id is None
        assert cleared.sync_status is SyncStatus.PENDING
        assert shoot_db.get_by_external_event_id("evt-9") is None

    def test_list_with_external_event_window(self, shoot_db, client):
        early = shoot_db.create_shoot("A", client.id, utc(2026, 3, 10, 9, 0), 30, "X")
        late = shoot_db.create_shoot("B", client.id, utc(2026, 4, 10, 9, 0), 30, "X")
        shoot_db.create_shoot("C", client.id, utc(2026, 3, 11, 9, 0), 30, "X")
        shoot_db.mark_synced(early.id, "evt-a")
        shoot_db.mark_synced(late.id, "evt-b")

        assert [s.title for s in shoot_db.list_with_external_event()] == ["A", "B"]
        in_march = shoot_db.list_with_external_event(start=utc(2026, 3, 1), end=utc(2026, 4, 1))
        assert [s.title for s in in_march] == ["A"]

    def test_post_idea_count(self, shoot_db, client):
        shoot = shoot_db.create_shoot("A", client.id, utc(2026, 3, 10, 9, 0), 30, "X")
        assert shoot_db.attach_post_idea(shoot.id, 1) is True
        assert shoot_db.attach_post_idea(shoot.id, 2) is True
        assert shoot_db.attach_post_idea(shoot.id, 2) is False
        assert shoot_db.get_shoot(shoot.id).post_idea_count == 2


# ---------------------------------------------------------------------------
# CalendarCacheDB
# ---------------------------------------------------------------------------


class TestCalendarCacheDB:
    def test_upsert_round_trips_fields(self, cache_db):
        event = _cached(
            attendees=[Attendee("a@test.com", "Ann", "accepted")],
            is_recurring=True,
            recurring_event_id="series-1",
            status=EventStatus.TENTATIVE,
            location="Cafe",
        )
        stored = cache_db.upsert_cached_event(event)
        assert stored.attendees == [Attendee("a@test.com", "Ann", "accepted")]
        assert stored.is_recurring is True
        assert stored.recurring_event_id == "series-1"
        assert stored.status is EventStatus.TENTATIVE
        assert stored.start_time == event.start_time

    def test_upsert_is_keyed_by_owner_calendar_and_id(self, cache_db):
        cache_db.upsert_cached_event(_cached("evt-1", title="First"))
        cache_db.upsert_cached_event(_cached("evt-1", title="Renamed"))
        cache_db.upsert_cached_event(_cached("evt-1", owner_email="other@studio.test"))

        mine = cache_db.get_cached_events(OWNER)
        assert len(mine) == 1
        assert mine[0].title == "Renamed"
        assert len(cache_db.get_cached_events("other@studio.test")) == 1

    def test_refresh_keeps_shoot_link(self, cache_db):
        cache_db.upsert_cached_event(_cached("evt-1"))
        cache_db.set_shoot_link(OWNER, "evt-1", 42)
        refreshed = cache_db.upsert_cached_event(_cached("evt-1", title="Moved"))
        assert refreshed.shoot_id == 42
        assert refreshed.title == "Moved"

    def test_get_cached_events_window_and_order(self, cache_db):
        cache_db.upsert_cached_event(_cached("late", start=utc(2026, 3, 12, 9, 0)))
        cache_db.upsert_cached_event(_cached("early", start=utc(2026, 3, 10, 9, 0)))
        cache_db.upsert_cached_event(_cached("outside", start=utc(2026, 3, 20, 9, 0)))

        events = cache_db.get_cached_events(OWNER, start=utc(2026, 3, 10), end=utc(2026, 3, 20))
        assert [e.external_event_id for e in events] == ["early", "late"]

    def test_set_conflicts(self, cache_db):
        cache_db.upsert_cached_event(_cached("evt-1"))
        snap = ConflictSnapshot("Other", utc(2026, 3, 10, 14, 30), utc(2026, 3, 10, 15, 0), "evt-2")
        cache_db.set_conflicts(OWNER, "evt-1", [snap])
        stored = cache_db.get_event(OWNER, "evt-1")
        assert stored.conflict_detected is True
        assert stored.conflict_details == [snap]

        cache_db.set_conflicts(OWNER, "evt-1", [])
        assert cache_db.get_event(OWNER, "evt-1").conflict_detected is False

    def test_delete_and_clear(self, cache_db):
        cache_db.upsert_cached_event(_cached("evt-1"))
        cache_db.upsert_cached_event(_cached("evt-2", start=utc(2026, 3, 11, 9, 0)))
        assert cache_db.delete_cached_event(OWNER, "evt-1") is True
        assert cache_db.delete_cached_event(OWNER, "evt-1") is False
        assert cache_db.clear_event_cache(OWNER) == 1
        assert cache_db.get_cached_events(OWNER) == []

    def test_find_by_external_event_id_across_owners(self, cache_db):
        cache_db.upsert_cached_event(_cached("shared"))
        cache_db.upsert_cached_event(_cached("shared", owner_email="other@studio.test"))
        cache_db.upsert_cached_event(_cached("mine"))

        copies = cache_db.find_by_external_event_id("shared")
        assert sorted(c.owner_email for c in copies) == [OWNER, "other@studio.test"]
        assert cache_db.find_by_external_event_id("missing") == []


# ---------------------------------------------------------------------------
# IntegrationDB
# ---------------------------------------------------------------------------


class TestIntegrationDB:
    def test_upsert_and_get(self, integration_db):
        integration_db.upsert_integration(OWNER, "google", '{"token": "t"}', calendar_id="work")
        found = integration_db.get_integration(OWNER)
        assert found.provider == "google"
        assert found.connected is True
        assert found.calendar_id == "work"

    def test_disconnected_not_returned_without_provider(self, integration_db):
        integration_db.upsert_integration(OWNER, "google", None, connected=False)
        assert integration_db.get_integration(OWNER) is None
        assert integration_db.get_integration(OWNER, "google").connected is False

    def test_record_sync(self, integration_db):
        integration_db.upsert_integration(OWNER, "google", "{}")
        integration_db.record_sync(OWNER, "google", error="rate limited")
        found = integration_db.get_integration(OWNER, "google")
        assert found.error == "rate limited"
        assert found.last_sync_at is not None
