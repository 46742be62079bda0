"""Tests for shootsync.core.conflict_checker — half-open overlap detection."""

import pytest

from conftest import OWNER, utc
from shootsync.core.conflict_checker import (
    annotate_overlaps,
    detect_conflicts,
    find_conflicts,
    intervals_overlap,
    validate_interval,
)
from shootsync.core.errors import InvalidInput, InvalidInterval
from shootsync.data.models import CachedCalendarEvent, EventStatus


def _event(ext_id, start, end, title=None, status=EventStatus.CONFIRMED):
    return CachedCalendarEvent(
        owner_email=OWNER,
        calendar_id="primary",
        external_event_id=ext_id,
        title=title or ext_id,
        start_time=start,
        end_time=end,
        status=status,
    )


# ---------------------------------------------------------------------------
# Tests for intervals_overlap / validate_interval
# ---------------------------------------------------------------------------


class TestIntervalsOverlap:
    def test_touching_intervals_do_not_overlap(self):
        assert not intervals_overlap(
            utc(2026, 3, 10, 10), utc(2026, 3, 10, 11),
            utc(2026, 3, 10, 11), utc(2026, 3, 10, 12),
        )

    def test_partial_overlap(self):
        assert intervals_overlap(
            utc(2026, 3, 10, 14), utc(2026, 3, 10, 15),
            utc(2026, 3, 10, 14, 30), utc(2026, 3, 10, 15, 30),
        )

    def test_containment(self):
        assert intervals_overlap(
            utc(2026, 3, 10, 9), utc(2026, 3, 10, 17),
            utc(2026, 3, 10, 12), utc(2026, 3, 10, 13),
        )

    def test_symmetric(self):
        a = (utc(2026, 3, 10, 9), utc(2026, 3, 10, 10))
        b = (utc(2026, 3, 10, 9, 59), utc(2026, 3, 10, 11))
        assert intervals_overlap(*a, *b) == intervals_overlap(*b, *a)


class TestValidateInterval:
    def test_zero_length_rejected(self):
        with pytest.raises(InvalidInterval):
            validate_interval(utc(2026, 3, 10, 10), utc(2026, 3, 10, 10))

    def test_inverted_rejected(self):
        with pytest.raises(InvalidInput):
            validate_interval(utc(2026, 3, 10, 11), utc(2026, 3, 10, 10))

    def test_valid_passes(self):
        validate_interval(utc(2026, 3, 10, 10), utc(2026, 3, 10, 10, 1))


# ---------------------------------------------------------------------------
# Tests for find_conflicts
# ---------------------------------------------------------------------------


class TestFindConflicts:
    def test_client_call_blocks_overlapping_shoot(self):
        call = _event("call", utc(2026, 3, 10, 14), utc(2026, 3, 10, 15), "Client Call")
        result = find_conflicts([call], utc(2026, 3, 10, 14, 30), utc(2026, 3, 10, 15, 30))
        assert [e.title for e in result] == ["Client Call"]

    def test_back_to_back_is_free(self):
        call = _event("call", utc(2026, 3, 10, 10), utc(2026, 3, 10, 11))
        assert find_conflicts([call], utc(2026, 3, 10, 11), utc(2026, 3, 10, 12)) == []

    def test_cancelled_events_ignored(self):
        cancelled = _event(
            "c", utc(2026, 3, 10, 14), utc(2026, 3, 10, 15), status=EventStatus.CANCELLED,
        )
        assert find_conflicts([cancelled], utc(2026, 3, 10, 14), utc(2026, 3, 10, 15)) == []

    def test_tentative_events_conflict(self):
        tentative = _event(
            "t", utc(2026, 3, 10, 14), utc(2026, 3, 10, 15), status=EventStatus.TENTATIVE,
        )
        assert len(find_conflicts([tentative], utc(2026, 3, 10, 14), utc(2026, 3, 10, 15))) == 1

    def test_excluded_event_skipped(self):
        ev = _event("self", utc(2026, 3, 10, 14), utc(2026, 3, 10, 15))
        result = find_conflicts(
            [ev], utc(2026, 3, 10, 14), utc(2026, 3, 10, 15), exclude_event_id="self",
        )
        assert result == []

    def test_sorted_by_start(self):
        later = _event("later", utc(2026, 3, 10, 13), utc(2026, 3, 10, 14))
        earlier = _event("earlier", utc(2026, 3, 10, 9), utc(2026, 3, 10, 12))
        result = find_conflicts([later, earlier], utc(2026, 3, 10, 8), utc(2026, 3, 10, 18))
        assert [e.external_event_id for e in result] == ["earlier", "later"]

    def test_invalid_interval_raises(self):
        with pytest.raises(InvalidInterval):
            find_conflicts([], utc(2026, 3, 10, 12), utc(2026, 3, 10, 11))


# ---------------------------------------------------------------------------
# Tests for annotate_overlaps
# ---------------------------------------------------------------------------


class TestAnnotateOverlaps:
    def test_pairs_annotated_both_ways(self):
        a = _event("a", utc(2026, 3, 10, 9), utc(2026, 3, 10, 11))
        b = _event("b", utc(2026, 3, 10, 10), utc(2026, 3, 10, 12))
        c = _event("c", utc(2026, 3, 10, 12), utc(2026, 3, 10, 13))
        overlaps = annotate_overlaps([a, b, c])
        assert [s.event_id for s in overlaps["a"]] == ["b"]
        assert [s.event_id for s in overlaps["b"]] == ["a"]
        assert overlaps["c"] == []

    def test_long_event_overlaps_several(self):
        long = _event("long", utc(2026, 3, 10, 8), utc(2026, 3, 10, 18))
        x = _event("x", utc(2026, 3, 10, 9), utc(2026, 3, 10, 10))
        y = _event("y", utc(2026, 3, 10, 15), utc(2026, 3, 10, 16))
        overlaps = annotate_overlaps([y, x, long])
        assert [s.event_id for s in overlaps["long"]] == ["x", "y"]
        assert overlaps["x"][0].event_id == "long"

    def test_cancelled_not_annotated(self):
        a = _event("a", utc(2026, 3, 10, 9), utc(2026, 3, 10, 11))
        gone = _event(
            "gone", utc(2026, 3, 10, 9), utc(2026, 3, 10, 11), status=EventStatus.CANCELLED,
        )
        overlaps = annotate_overlaps([a, gone])
        assert overlaps["a"] == []
        assert overlaps["gone"] == []


# ---------------------------------------------------------------------------
# Tests for detect_conflicts
# ---------------------------------------------------------------------------


class TestDetectConflicts:
    def test_reads_owner_cache(self, cache_db):
        cache_db.upsert_cached_event(
            _event("call", utc(2026, 3, 10, 14), utc(2026, 3, 10, 15), "Client Call")
        )
        result = detect_conflicts(
            cache_db, OWNER, "primary", utc(2026, 3, 10, 14, 30), utc(2026, 3, 10, 15, 30),
        )
        assert result.has_conflict
        snapshots = result.snapshots()
        assert snapshots[0].title == "Client Call"
        assert snapshots[0].start_time == utc(2026, 3, 10, 14)

    def test_other_owner_does_not_conflict(self, cache_db):
        cache_db.upsert_cached_event(
            _event("call", utc(2026, 3, 10, 14), utc(2026, 3, 10, 15))
        )
        result = detect_conflicts(
            cache_db, "someone@else.test", "primary",
            utc(2026, 3, 10, 14), utc(2026, 3, 10, 15),
        )
        assert not result.has_conflict

    def test_does_not_write(self, cache_db):
        cache_db.upsert_cached_event(
            _event("call", utc(2026, 3, 10, 14), utc(2026, 3, 10, 15))
        )
        before = cache_db.get_cached_events(OWNER)
        detect_conflicts(cache_db, OWNER, "primary", utc(2026, 3, 10, 14), utc(2026, 3, 10, 15))
        assert cache_db.get_cached_events(OWNER) == before
