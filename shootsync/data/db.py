"""
Shoot Sync — SQLite storage.

Shoots, clients and calendar integrations are local state owned by this
system. The calendar event cache is a per-owner materialized copy of the
external provider, written only by the calendar sync.

Every statement runs in its own short transaction; cross-row invariants
(the shoot <-> cached event link) are kept by convention, not constraints.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from shootsync.data.models import (
    Attendee,
    CachedCalendarEvent,
    CalendarIntegration,
    Client,
    ConflictSnapshot,
    EventStatus,
    Shoot,
    ShootStatus,
    SyncStatus,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS clients (
    id    INTEGER PRIMARY KEY AUTOINCREMENT,
    name  TEXT NOT NULL,
    name_normalized TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS shoots (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    title              TEXT    NOT NULL,
    client_id          INTEGER NOT NULL,
    scheduled_at       TEXT    NOT NULL,
    duration           INTEGER NOT NULL,
    location           TEXT    NOT NULL,
    status             TEXT    NOT NULL DEFAULT 'scheduled',
    notes              TEXT,
    external_event_id  TEXT,
    sync_status        TEXT    NOT NULL DEFAULT 'pending',
    last_sync_at       TEXT,
    sync_error         TEXT,
    created_at         TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS shoot_post_ideas (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    shoot_id      INTEGER NOT NULL,
    post_idea_id  INTEGER NOT NULL,
    UNIQUE (shoot_id, post_idea_id)
);

CREATE TABLE IF NOT EXISTS calendar_events_cache (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_email         TEXT    NOT NULL,
    calendar_id         TEXT    NOT NULL DEFAULT 'primary',
    external_event_id   TEXT    NOT NULL,
    shoot_id            INTEGER,
    title               TEXT    NOT NULL,
    description         TEXT,
    start_time          TEXT    NOT NULL,
    end_time            TEXT    NOT NULL,
    location            TEXT,
    status              TEXT    NOT NULL DEFAULT 'confirmed',
    attendees           TEXT    NOT NULL DEFAULT '[]',
    is_recurring        INTEGER NOT NULL DEFAULT 0,
    recurring_event_id  TEXT,
    conflict_detected   INTEGER NOT NULL DEFAULT 0,
    conflict_details    TEXT    NOT NULL DEFAULT '[]',
    sync_status         TEXT    NOT NULL DEFAULT 'synced',
    last_modified       TEXT,
    UNIQUE (owner_email, calendar_id, external_event_id)
);

CREATE INDEX IF NOT EXISTS idx_cache_owner_start
    ON calendar_events_cache (owner_email, calendar_id, start_time);

CREATE TABLE IF NOT EXISTS integrations (
    owner_email       TEXT    NOT NULL,
    provider          TEXT    NOT NULL,
    connected         INTEGER NOT NULL DEFAULT 0,
    credentials_json  TEXT,
    calendar_id       TEXT    NOT NULL DEFAULT 'primary',
    error             TEXT,
    last_sync_at      TEXT,
    PRIMARY KEY (owner_email, provider)
);
"""


def to_db_time(value: datetime | None) -> str | None:
    """Serialize an aware datetime as a second-precision UTC ISO string."""
    if value is None:
        return None
    if value.tzinfo is None:
        raise ValueError(f"naive datetime cannot be stored: {value!r}")
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def from_db_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value).astimezone(timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _SQLiteStore:
    """Shared connection handling; all stores share one database file."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from shootsync.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("%s tables initialized at %s", type(self).__name__, self._db_path)


class ClientDB(_SQLiteStore):
    """Minimal client lookups the scheduler needs. Client CRUD lives elsewhere."""

    @staticmethod
    def _row_to_client(row: sqlite3.Row) -> Client:
        return Client(id=row["id"], name=row["name"])

    def add_client(self, name: str) -> Client:
        name = name.strip()
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO clients (name, name_normalized) VALUES (?, ?)",
                (name, name.lower()),
            )
            client_id = cursor.lastrowid
        logger.info("Client added: #%d '%s'", client_id, name)
        return Client(id=client_id, name=name)

    def resolve_client_by_name(self, name: str) -> Client | None:
        """Case-insensitive exact match on the client name."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM clients WHERE name_normalized = ?",
                (name.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_client(row)


class ShootDB(_SQLiteStore):
    """SQLite-backed storage for shoots."""

    _SELECT = """
        SELECT s.*,
               c.name AS client_name,
               (SELECT COUNT(*) FROM shoot_post_ideas p WHERE p.shoot_id = s.id)
                   AS post_idea_count
        FROM shoots s
        LEFT JOIN clients c ON c.id = s.client_id
    """

    @staticmethod
    def _row_to_shoot(row: sqlite3.Row) -> Shoot:
        return Shoot(
            id=row["id"],
            title=row["title"],
            client_id=row["client_id"],
            scheduled_at=from_db_time(row["scheduled_at"]),
            duration=row["duration"],
            location=row["location"],
            status=ShootStatus(row["status"]),
            notes=row["notes"],
            external_event_id=row["external_event_id"],
            sync_status=SyncStatus(row["sync_status"]),
            last_sync_at=from_db_time(row["last_sync_at"]),
            sync_error=row["sync_error"],
            client_name=row["client_name"],
            post_idea_count=row["post_idea_count"],
        )

    def create_shoot(
        self,
        title: str,
        client_id: int,
        scheduled_at: datetime,
        duration: int,
        location: str,
        notes: str | None = None,
    ) -> Shoot:
        """Insert a new shoot in 'scheduled' status with calendar sync pending."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO shoots
                    (title, client_id, scheduled_at, duration, location, notes,
                     status, sync_status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, 'scheduled', 'pending', ?)
                """,
                (
                    title, client_id, to_db_time(scheduled_at), duration,
                    location, notes, to_db_time(_now()),
                ),
            )
            shoot_id = cursor.lastrowid
        logger.info("Shoot created: #%d '%s' at %s", shoot_id, title, scheduled_at.isoformat())
        return self.get_shoot(shoot_id)

    def get_shoot(self, shoot_id: int) -> Shoot | None:
        with self._connect() as conn:
            row = conn.execute(self._SELECT + " WHERE s.id = ?", (shoot_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_shoot(row)

    def get_by_external_event_id(self, external_event_id: str) -> Shoot | None:
        with self._connect() as conn:
            row = conn.execute(
                self._SELECT + " WHERE s.external_event_id = ?", (external_event_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_shoot(row)

    def list_shoots(
        self,
        client_id: int | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Shoot]:
        """List shoots ordered by scheduled_at, optionally by client and [start, end)."""
        conditions: list[str] = []
        params: list = []
        if client_id is not None:
            conditions.append("s.client_id = ?")
            params.append(client_id)
        if start is not None:
            conditions.append("s.scheduled_at >= ?")
            params.append(to_db_time(start))
        if end is not None:
            conditions.append("s.scheduled_at < ?")
            params.append(to_db_time(end))

        query = self._SELECT
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY s.scheduled_at, s.id"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_shoot(r) for r in rows]

    def list_with_external_event(
        self, start: datetime | None = None, end: datetime | None = None,
    ) -> list[Shoot]:
        """Shoots that claim an external calendar event, optionally starting in [start, end)."""
        query = self._SELECT + " WHERE s.external_event_id IS NOT NULL"
        params: list = []
        if start is not None:
            query += " AND s.scheduled_at >= ?"
            params.append(to_db_time(start))
        if end is not None:
            query += " AND s.scheduled_at < ?"
            params.append(to_db_time(end))
        query += " ORDER BY s.id"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_shoot(r) for r in rows]

    def mark_synced(
        self, shoot_id: int, external_event_id: str, synced_at: datetime | None = None,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE shoots
                SET external_event_id = ?, sync_status = 'synced',
                    last_sync_at = ?, sync_error = NULL
                WHERE id = ?
                """,
                (external_event_id, to_db_time(synced_at or _now()), shoot_id),
            )
        logger.info("Shoot #%d synced to calendar event %s", shoot_id, external_event_id)

    def mark_sync_error(
        self, shoot_id: int, error: str, synced_at: datetime | None = None,
    ) -> None:
        """Record a failed calendar sync. Any external_event_id is kept as an orphan."""
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE shoots
                SET sync_status = 'error', last_sync_at = ?, sync_error = ?
                WHERE id = ?
                """,
                (to_db_time(synced_at or _now()), error, shoot_id),
            )
        logger.warning("Shoot #%d calendar sync failed: %s", shoot_id, error)

    def clear_calendar_sync(self, shoot_id: int) -> None:
        """Drop the calendar link after the external event disappeared."""
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE shoots
                SET external_event_id = NULL, sync_status = 'pending',
                    last_sync_at = ?, sync_error = NULL
                WHERE id = ?
                """,
                (to_db_time(_now()), shoot_id),
            )
        logger.info("Shoot #%d calendar link cleared", shoot_id)

    def attach_post_idea(self, shoot_id: int, post_idea_id: int) -> bool:
        """Assign a post idea to a shoot. Returns False if already assigned."""
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO shoot_post_ideas (shoot_id, post_idea_id) VALUES (?, ?)",
                (shoot_id, post_idea_id),
            )
        return cursor.rowcount > 0


class CalendarCacheDB(_SQLiteStore):
    """Per-owner cache of external calendar events."""

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> CachedCalendarEvent:
        attendees = [Attendee(**a) for a in json.loads(row["attendees"] or "[]")]
        details = [
            ConflictSnapshot(
                title=d["title"],
                start_time=from_db_time(d["start_time"]),
                end_time=from_db_time(d["end_time"]),
                event_id=d.get("event_id", ""),
            )
            for d in json.loads(row["conflict_details"] or "[]")
        ]
        return CachedCalendarEvent(
            owner_email=row["owner_email"],
            calendar_id=row["calendar_id"],
            external_event_id=row["external_event_id"],
            title=row["title"],
            start_time=from_db_time(row["start_time"]),
            end_time=from_db_time(row["end_time"]),
            description=row["description"],
            location=row["location"],
            attendees=attendees,
            is_recurring=bool(row["is_recurring"]),
            recurring_event_id=row["recurring_event_id"],
            status=EventStatus(row["status"]),
            shoot_id=row["shoot_id"],
            conflict_detected=bool(row["conflict_detected"]),
            conflict_details=details,
            sync_status=SyncStatus(row["sync_status"]),
            last_modified=from_db_time(row["last_modified"]),
        )

    @staticmethod
    def _dump_snapshots(snapshots: list[ConflictSnapshot]) -> str:
        return json.dumps([
            {
                "event_id": s.event_id,
                "title": s.title,
                "start_time": to_db_time(s.start_time),
                "end_time": to_db_time(s.end_time),
            }
            for s in snapshots
        ])

    def get_cached_events(
        self,
        owner_email: str,
        calendar_id: str = "primary",
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[CachedCalendarEvent]:
        """Cached events ordered by start_time, optionally starting in [start, end)."""
        query = "SELECT * FROM calendar_events_cache WHERE owner_email = ? AND calendar_id = ?"
        params: list = [owner_email, calendar_id]
        if start is not None:
            query += " AND start_time >= ?"
            params.append(to_db_time(start))
        if end is not None:
            query += " AND start_time < ?"
            params.append(to_db_time(end))
        query += " ORDER BY start_time, id"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_event(r) for r in rows]

    def get_event(
        self, owner_email: str, external_event_id: str, calendar_id: str = "primary",
    ) -> CachedCalendarEvent | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM calendar_events_cache
                WHERE owner_email = ? AND calendar_id = ? AND external_event_id = ?
                """,
                (owner_email, calendar_id, external_event_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_event(row)

    def find_by_external_event_id(self, external_event_id: str) -> list[CachedCalendarEvent]:
        """Every cached copy of an event, across owners and calendars."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM calendar_events_cache WHERE external_event_id = ? ORDER BY id",
                (external_event_id,),
            ).fetchall()
        return [self._row_to_event(r) for r in rows]

    def upsert_cached_event(self, event: CachedCalendarEvent) -> CachedCalendarEvent:
        """Insert or refresh an event by (owner, calendar, external id).

        A refresh replaces every provider-sourced field but keeps an existing
        shoot link when the incoming record carries none.
        """
        attendees = json.dumps([
            {
                "email": a.email,
                "display_name": a.display_name,
                "response_status": a.response_status,
            }
            for a in event.attendees
        ])
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO calendar_events_cache
                    (owner_email, calendar_id, external_event_id, shoot_id, title,
                     description, start_time, end_time, location, status, attendees,
                     is_recurring, recurring_event_id, conflict_detected,
                     conflict_details, sync_status, last_modified)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (owner_email, calendar_id, external_event_id) DO UPDATE SET
                    shoot_id = COALESCE(excluded.shoot_id, calendar_events_cache.shoot_id),
                    title = excluded.title,
                    description = excluded.description,
                    start_time = excluded.start_time,
                    end_time = excluded.end_time,
                    location = excluded.location,
                    status = excluded.status,
                    attendees = excluded.attendees,
                    is_recurring = excluded.is_recurring,
                    recurring_event_id = excluded.recurring_event_id,
                    conflict_detected = excluded.conflict_detected,
                    conflict_details = excluded.conflict_details,
                    sync_status = excluded.sync_status,
                    last_modified = excluded.last_modified
                """,
                (
                    event.owner_email, event.calendar_id, event.external_event_id,
                    event.shoot_id, event.title, event.description,
                    to_db_time(event.start_time), to_db_time(event.end_time),
                    event.location, event.status.value, attendees,
                    int(event.is_recurring), event.recurring_event_id,
                    int(event.conflict_detected),
                    self._dump_snapshots(event.conflict_details),
                    event.sync_status.value, to_db_time(event.last_modified),
                ),
            )
        return self.get_event(event.owner_email, event.external_event_id, event.calendar_id)

    def delete_cached_event(
        self, owner_email: str, external_event_id: str, calendar_id: str = "primary",
    ) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                DELETE FROM calendar_events_cache
                WHERE owner_email = ? AND calendar_id = ? AND external_event_id = ?
                """,
                (owner_email, calendar_id, external_event_id),
            )
        return cursor.rowcount > 0

    def set_shoot_link(
        self,
        owner_email: str,
        external_event_id: str,
        shoot_id: int | None,
        calendar_id: str = "primary",
    ) -> bool:
        """Set (or clear, with None) the back-reference to a shoot."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE calendar_events_cache SET shoot_id = ?
                WHERE owner_email = ? AND calendar_id = ? AND external_event_id = ?
                """,
                (shoot_id, owner_email, calendar_id, external_event_id),
            )
        return cursor.rowcount > 0

    def set_conflicts(
        self,
        owner_email: str,
        external_event_id: str,
        snapshots: list[ConflictSnapshot],
        calendar_id: str = "primary",
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE calendar_events_cache
                SET conflict_detected = ?, conflict_details = ?
                WHERE owner_email = ? AND calendar_id = ? AND external_event_id = ?
                """,
                (
                    int(bool(snapshots)), self._dump_snapshots(snapshots),
                    owner_email, calendar_id, external_event_id,
                ),
            )

    def clear_event_cache(self, owner_email: str, calendar_id: str = "primary") -> int:
        """Drop every cached event for an owner's calendar (forces a full resync)."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM calendar_events_cache WHERE owner_email = ? AND calendar_id = ?",
                (owner_email, calendar_id),
            )
        logger.info(
            "Cleared %d cached event(s) for %s/%s", cursor.rowcount, owner_email, calendar_id,
        )
        return cursor.rowcount


class IntegrationDB(_SQLiteStore):
    """Stored calendar connections. Token acquisition happens elsewhere."""

    @staticmethod
    def _row_to_integration(row: sqlite3.Row) -> CalendarIntegration:
        return CalendarIntegration(
            owner_email=row["owner_email"],
            provider=row["provider"],
            connected=bool(row["connected"]),
            credentials_json=row["credentials_json"],
            calendar_id=row["calendar_id"],
            error=row["error"],
            last_sync_at=from_db_time(row["last_sync_at"]),
        )

    def upsert_integration(
        self,
        owner_email: str,
        provider: str,
        credentials_json: str | None,
        connected: bool = True,
        calendar_id: str = "primary",
    ) -> CalendarIntegration:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO integrations
                    (owner_email, provider, connected, credentials_json, calendar_id)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (owner_email, provider) DO UPDATE SET
                    connected = excluded.connected,
                    credentials_json = excluded.credentials_json,
                    calendar_id = excluded.calendar_id,
                    error = NULL
                """,
                (owner_email, provider, int(connected), credentials_json, calendar_id),
            )
        logger.info("Integration %s stored for %s (connected=%s)", provider, owner_email, connected)
        return self.get_integration(owner_email, provider)

    def get_integration(
        self, owner_email: str, provider: str | None = None,
    ) -> CalendarIntegration | None:
        """Fetch an owner's integration; without provider, the first connected one."""
        query = "SELECT * FROM integrations WHERE owner_email = ?"
        params: list = [owner_email]
        if provider is not None:
            query += " AND provider = ?"
            params.append(provider)
        else:
            query += " AND connected = 1"
        query += " ORDER BY provider LIMIT 1"
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
        if row is None:
            return None
        return self._row_to_integration(row)

    def record_sync(self, owner_email: str, provider: str, error: str | None = None) -> None:
        """Stamp the last sync attempt and its error (None on success)."""
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE integrations SET last_sync_at = ?, error = ?
                WHERE owner_email = ? AND provider = ?
                """,
                (to_db_time(_now()), error, owner_email, provider),
            )
