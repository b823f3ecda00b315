"""Tests for duration and timestamp formatting."""

from devtime.formatting import (
    format_duration,
    format_duration_long,
    format_timestamp,
    make_progress_bar,
)


class TestFormatDuration:
    """Tests for format_duration."""

    def test_minutes_only(self):
        assert format_duration(300) == "5m"
        assert format_duration(0) == "0m"
        assert format_duration(59 * 60) == "59m"

    def test_hours_and_minutes(self):
        assert format_duration(3600) == "1h 0m"
        assert format_duration(3660) == "1h 1m"
        assert format_duration(7200 + 1800) == "2h 30m"

    def test_floors_partial_minutes(self):
        assert format_duration(119) == "1m"


class TestFormatDurationLong:
    """Tests for format_duration_long."""

    def test_full_words(self):
        assert format_duration_long(60) == "1 minute"
        assert format_duration_long(120) == "2 minutes"
        assert format_duration_long(3600) == "1 hour 0 mins"
        assert format_duration_long(7260) == "2 hours 1 min"


class TestFormatTimestamp:
    """Tests for format_timestamp."""

    def test_utc(self):
        assert format_timestamp(1_736_985_600_000) == "2025-01-16 00:00"
        assert format_timestamp(1_736_985_540_000) == "2025-01-15 23:59"


class TestMakeProgressBar:
    """Tests for make_progress_bar."""

    def test_empty(self):
        assert make_progress_bar(0, 100) == "░" * 16
        assert make_progress_bar(5, 0) == "░" * 16

    def test_full(self):
        assert make_progress_bar(100, 100) == "█" * 16

    def test_half(self):
        assert make_progress_bar(50, 100) == "█" * 8 + "░" * 8

    def test_tiny_value_shows_one_block(self):
        assert make_progress_bar(1, 1000, width=10) == "█" + "░" * 9
