"""Unit tests for delay duration parsing."""

import pytest

from models.duration import DurationParseError, parse_duration_ms


class TestIsoDurations:
    """ISO 8601 durations."""

    def test_minutes(self):
        assert parse_duration_ms("PT1M") == 60_000

    def test_days(self):
        assert parse_duration_ms("P3D") == 3 * 86_400_000

    def test_days_and_hours(self):
        assert parse_duration_ms("P1DT12H") == 86_400_000 + 12 * 3_600_000

    def test_weeks(self):
        assert parse_duration_ms("P2W") == 2 * 604_800_000

    def test_fractional_seconds(self):
        assert parse_duration_ms("PT1.5S") == 1500

    def test_lowercase_accepted(self):
        assert parse_duration_ms("pt30s") == 30_000

    def test_zero(self):
        assert parse_duration_ms("PT0S") == 0

    def test_bare_designator_raises(self):
        with pytest.raises(DurationParseError):
            parse_duration_ms("PT")

    def test_trailing_time_designator_raises(self):
        with pytest.raises(DurationParseError):
            parse_duration_ms("P1DT")

    def test_years_not_supported(self):
        """Calendar units have no fixed length."""
        with pytest.raises(DurationParseError):
            parse_duration_ms("P1Y")


class TestHumanDurations:
    """Short human-readable phrases."""

    def test_days(self):
        assert parse_duration_ms("3 days") == 3 * 86_400_000

    def test_single_hour(self):
        assert parse_duration_ms("1 hour") == 3_600_000

    def test_compound(self):
        assert parse_duration_ms("1h 30m") == 90 * 60_000

    def test_compound_with_and(self):
        assert parse_duration_ms("1 hour and 15 minutes") == 75 * 60_000

    def test_milliseconds(self):
        assert parse_duration_ms("500ms") == 500

    def test_case_insensitive(self):
        assert parse_duration_ms("10 Seconds") == 10_000

    def test_unknown_unit_raises(self):
        with pytest.raises(DurationParseError, match="fortnight"):
            parse_duration_ms("1 fortnight")

    def test_garbage_raises(self):
        with pytest.raises(DurationParseError):
            parse_duration_ms("soon")

    def test_leftover_text_raises(self):
        with pytest.raises(DurationParseError):
            parse_duration_ms("3 days later")


class TestDurationErrors:
    """Errors for missing input."""

    def test_empty_raises(self):
        with pytest.raises(DurationParseError, match="duration is required"):
            parse_duration_ms("")

    def test_none_raises(self):
        with pytest.raises(DurationParseError, match="duration is required"):
            parse_duration_ms(None)

    def test_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_duration_ms("nope")

    def test_error_keeps_value(self):
        with pytest.raises(DurationParseError) as exc:
            parse_duration_ms("nope")
        assert exc.value.value == "nope"
