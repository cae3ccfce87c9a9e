"""Unit tests for timestamp utilities."""

from datetime import datetime, timedelta, timezone

from market_alerts.utils.timestamps import ensure_utc, format_timestamp, utc_now


class TestUtcNow:
    """Tests for utc_now function."""

    def test_utc_now_returns_utc_datetime(self):
        """Test that utc_now returns a timezone-aware datetime in UTC."""
        now = utc_now()

        assert now.tzinfo == timezone.utc
        assert isinstance(now, datetime)

    def test_utc_now_is_recent(self):
        """Test that utc_now returns a recent timestamp."""
        before = datetime.now(timezone.utc)
        now = utc_now()
        after = datetime.now(timezone.utc)

        assert before <= now <= after


class TestEnsureUtc:
    """Tests for ensure_utc function."""

    def test_ensure_utc_with_none(self):
        """Test that None passes through."""
        assert ensure_utc(None) is None

    def test_naive_datetime_treated_as_utc(self):
        """Test that naive datetimes get the UTC zone without shifting."""
        result = ensure_utc(datetime(2026, 1, 5, 9, 0, 0))
        assert result == datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)

    def test_aware_datetime_converted(self):
        """Test that other zones are converted to UTC."""
        plus_two = timezone(timedelta(hours=2))
        result = ensure_utc(datetime(2026, 1, 5, 11, 0, 0, tzinfo=plus_two))
        assert result == datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)
        assert result.tzinfo == timezone.utc


class TestFormatTimestamp:
    """Tests for format_timestamp function."""

    def test_format(self):
        """Test ISO-8601 output with a Z suffix."""
        dt = datetime(2026, 1, 5, 9, 0, 0, 123456, tzinfo=timezone.utc)
        assert format_timestamp(dt) == "2026-01-05T09:00:00Z"
        assert format_timestamp(dt, include_microseconds=True) == "2026-01-05T09:00:00.123456Z"

    def test_format_converts_zone(self):
        """Test that non-UTC input is rendered in UTC."""
        dt = datetime(2026, 1, 5, 4, 0, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert format_timestamp(dt) == "2026-01-05T09:00:00Z"

    def test_format_none(self):
        """Test that None formats as an empty string."""
        assert format_timestamp(None) == ""
