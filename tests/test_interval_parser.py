"""Tests for stayconnected.core.interval_parser — duration strings."""

import pytest

from stayconnected.core.interval_parser import (
    UNIT_MS,
    format_interval,
    humanize_ms,
    interval_unit,
    is_valid_interval,
    parse_interval,
)

HOUR = 3_600_000
DAY = 24 * HOUR


class TestParseInterval:
    def test_days(self):
        assert parse_interval("2 days") == 2 * DAY

    def test_singular_and_plural(self):
        assert parse_interval("1 day") == parse_interval("1 days") == DAY

    def test_case_insensitive(self):
        assert parse_interval("1 Week") == 7 * DAY
        assert parse_interval("3 HOURS") == 3 * HOUR

    def test_surrounding_whitespace(self):
        assert parse_interval("  12 hours ") == 12 * HOUR

    def test_month_is_thirty_days(self):
        assert parse_interval("1 month") == 30 * DAY

    def test_year_is_365_days(self):
        assert parse_interval("1 year") == 365 * DAY

    def test_seconds_and_minutes(self):
        assert parse_interval("30 seconds") == 30_000
        assert parse_interval("5 minutes") == 300_000

    @pytest.mark.parametrize("text", ["", None, "day", "two days", "1.5 days", "-1 day", "1 fortnight", "1day"])
    def test_unparseable_returns_zero(self, text):
        assert parse_interval(text) == 0

    def test_zero_count_parses_to_zero(self):
        assert parse_interval("0 days") == 0


class TestIntervalHelpers:
    def test_interval_unit(self):
        assert interval_unit("3 Weeks") == "week"
        assert interval_unit("garbage") is None

    def test_is_valid_interval(self):
        assert is_valid_interval("1 hour") is True
        assert is_valid_interval("0 hours") is False
        assert is_valid_interval("soon") is False


class TestFormatInterval:
    def test_plural(self):
        assert format_interval(2 * DAY, "day") == "2 days"

    def test_singular(self):
        assert format_interval(HOUR, "hours") == "1 hour"

    def test_parse_of_format_is_identity(self):
        for text in ("1 day", "12 hours", "3 weeks", "2 months", "1 year", "45 seconds"):
            ms = parse_interval(text)
            assert parse_interval(format_interval(ms, interval_unit(text))) == ms

    def test_unknown_unit_raises(self):
        with pytest.raises(ValueError):
            format_interval(DAY, "fortnight")

    def test_fractional_value_raises(self):
        with pytest.raises(ValueError):
            format_interval(36 * HOUR, "day")

    def test_negative_raises(self):
        with pytest.raises(ValueError):
            format_interval(-DAY, "day")


class TestHumanize:
    def test_largest_whole_unit(self):
        assert humanize_ms(50 * HOUR) == "2 days"
        assert humanize_ms(3 * HOUR) == "3 hours"
        assert humanize_ms(UNIT_MS["week"]) == "1 week"

    def test_small_values(self):
        assert humanize_ms(1000) == "1 second"
        assert humanize_ms(0) == "0 seconds"

    def test_negative_uses_magnitude(self):
        assert humanize_ms(-2 * HOUR) == "2 hours"
