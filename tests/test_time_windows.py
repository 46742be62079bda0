"""Tests for shootsync.core.time_windows — local input and default windows."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from conftest import utc
from shootsync.core.time_windows import (
    add_months,
    as_utc,
    list_window,
    parse_instant,
    parse_local_datetime,
    sync_window,
    today_start,
)

_PATCH_SETTINGS = "shootsync.core.time_windows.settings"


class TestParseLocalDatetime:
    def test_utc_timezone(self):
        assert parse_local_datetime("2026-03-10", "14:30") == utc(2026, 3, 10, 14, 30)

    def test_local_timezone_converted(self):
        with patch(_PATCH_SETTINGS) as mock_settings:
            mock_settings.TIMEZONE = "Asia/Jerusalem"
            # Israel is UTC+2 in early March
            assert parse_local_datetime("2026-03-10", "14:30") == utc(2026, 3, 10, 12, 30)

    @pytest.mark.parametrize("date_str,time_str", [
        ("2026-13-01", "10:00"),
        ("10/03/2026", "10:00"),
        ("2026-03-10", "25:00"),
        ("2026-03-10", "noon"),
    ])
    def test_invalid_input(self, date_str, time_str):
        with pytest.raises(ValueError):
            parse_local_datetime(date_str, time_str)


class TestWindows:
    def test_today_start(self):
        assert today_start(utc(2026, 3, 10, 17, 45)) == utc(2026, 3, 10)

    def test_sync_window_defaults_to_14_days(self):
        start, end = sync_window(utc(2026, 3, 10, 17, 45))
        assert start == utc(2026, 3, 10)
        assert end == utc(2026, 3, 24)

    def test_list_window_three_months(self):
        start, end = list_window(utc(2026, 3, 10, 8, 0))
        assert start == utc(2026, 3, 10)
        assert end == utc(2026, 6, 10)

    def test_add_months_clamps_day(self):
        assert add_months(utc(2026, 1, 31), 1) == utc(2026, 2, 28)
        assert add_months(utc(2026, 11, 15), 3) == utc(2027, 2, 15)


class TestParseInstant:
    def test_date_only_is_local_midnight(self):
        assert parse_instant("2026-03-10") == utc(2026, 3, 10)

    def test_iso_with_zulu(self):
        assert parse_instant("2026-03-10T14:30:00Z") == utc(2026, 3, 10, 14, 30)

    def test_offset_converted(self):
        assert parse_instant("2026-03-10T14:30:00+02:00") == utc(2026, 3, 10, 12, 30)

    def test_garbage(self):
        with pytest.raises(ValueError):
            parse_instant("next tuesday")

    def test_as_utc_reads_naive_as_local(self):
        assert as_utc(datetime(2026, 3, 10, 9, 0)) == utc(2026, 3, 10, 9, 0)
        assert as_utc(utc(2026, 3, 10, 9, 0)).tzinfo == timezone.utc
