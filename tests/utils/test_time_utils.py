"""Tests for the clock and date helpers."""

from datetime import UTC, datetime, timedelta

from library_system.utils.time_utils import add_days, days_late, parse_datetime, utc_now

DUE = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)


class TestDaysLate:
    """Tests for the days_late function."""

    def test_on_time(self):
        """Test that returning before or at the due date is not late."""
        assert days_late(DUE, DUE - timedelta(days=2)) == 0
        assert days_late(DUE, DUE) == 0

    def test_whole_days(self):
        """Test three full days late."""
        assert days_late(DUE, DUE + timedelta(days=3)) == 3

    def test_partial_day_rounds_up(self):
        """Test that a started day counts as a full day."""
        assert days_late(DUE, DUE + timedelta(seconds=1)) == 1
        assert days_late(DUE, DUE + timedelta(days=2, hours=1)) == 3


class TestParseDatetime:
    """Tests for the parse_datetime function."""

    def test_none(self):
        assert parse_datetime(None) is None

    def test_iso_string(self):
        """Test parsing the ISO form written by JSON snapshots."""
        assert parse_datetime("2024-01-15T12:00:00+00:00") == DUE

    def test_naive_datetime_treated_as_utc(self):
        """Test that naive datetimes come back timezone-aware."""
        parsed = parse_datetime(datetime(2024, 1, 15, 12, 0))
        assert parsed == DUE
        assert parsed.tzinfo is not None

    def test_offset_converted_to_utc(self):
        assert parse_datetime("2024-01-15T14:00:00+02:00") == DUE


def test_utc_now_is_aware():
    assert utc_now().utcoffset() == timedelta(0)


def test_add_days():
    assert add_days(DUE, 14) == datetime(2024, 1, 29, 12, 0, tzinfo=UTC)
