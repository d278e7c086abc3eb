"""Tests for stayconnected.core.overdue_evaluator — pure overdue logic."""

from datetime import datetime, timedelta, timezone

import pytest

from stayconnected.core.overdue_evaluator import (
    evaluate,
    normalize_threshold,
    urgency_for,
)

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def _ago(**kwargs):
    return NOW - timedelta(**kwargs)


class TestEvaluate:
    def test_fifty_hours_against_two_day_window_is_critical(self):
        verdict = evaluate(_ago(hours=50), "1 day", 2, now=NOW)
        assert verdict.overdue is True
        assert verdict.urgency == "critical"
        assert verdict.missed_intervals == 2

    def test_ten_hours_against_two_day_window_is_good(self):
        verdict = evaluate(_ago(hours=10), "1 day", 2, now=NOW)
        assert verdict.overdue is False
        assert verdict.urgency == "good"
        assert verdict.missed_intervals == 0

    def test_exact_boundary_is_overdue(self):
        verdict = evaluate(_ago(hours=48), "1 day", 2, now=NOW)
        assert verdict.overdue is True
        assert verdict.time_left_ms == 0

    def test_one_ms_before_boundary_is_not_overdue(self):
        verdict = evaluate(_ago(hours=48) + timedelta(milliseconds=1), "1 day", 2, now=NOW)
        assert verdict.overdue is False
        assert verdict.urgency == "urgent"

    def test_missing_threshold_means_one_interval(self):
        assert evaluate(_ago(hours=25), "1 day", None, now=NOW).overdue is True
        assert evaluate(_ago(hours=23), "1 day", None, now=NOW).overdue is False

    def test_unparseable_frequency_is_never_overdue(self):
        verdict = evaluate(_ago(days=400), "whenever", 1, now=NOW)
        assert verdict.overdue is False
        assert verdict.urgency == "good"
        assert verdict.describe() == "no deadline"

    def test_future_check_in_clamps_elapsed(self):
        verdict = evaluate(NOW + timedelta(hours=1), "1 day", 1, now=NOW)
        assert verdict.elapsed_ms == 0
        assert verdict.overdue is False

    def test_accepts_iso_strings(self):
        verdict = evaluate("2025-03-08T10:00:00Z", "1 day", 2, now=NOW)
        assert verdict.overdue is True

    def test_monotone_in_elapsed(self):
        """Once overdue, later evaluation instants stay overdue."""
        last = _ago(hours=30)
        verdicts = [evaluate(last, "1 day", 1, now=NOW + timedelta(hours=h)) for h in range(0, 48, 6)]
        assert all(v.overdue for v in verdicts)


class TestReminderPhase:
    def test_in_reminder_phase_between_first_interval_and_threshold(self):
        verdict = evaluate(_ago(hours=26), "1 day", 3, now=NOW)
        assert verdict.in_reminder_phase is True
        assert verdict.missed_intervals == 1
        assert verdict.reminders_left == 2

    def test_not_in_reminder_phase_before_first_interval(self):
        assert evaluate(_ago(hours=5), "1 day", 3, now=NOW).in_reminder_phase is False

    def test_threshold_one_has_no_reminder_phase(self):
        assert evaluate(_ago(hours=30), "1 day", 1, now=NOW).in_reminder_phase is False


class TestDescribe:
    def test_time_left(self):
        assert evaluate(_ago(hours=21), "1 day", 1, now=NOW).describe() == "3 hours left"

    def test_overdue(self):
        assert evaluate(_ago(hours=26), "1 day", 1, now=NOW).describe() == "2 hours overdue"

    def test_due_now(self):
        assert evaluate(_ago(hours=24), "1 day", 1, now=NOW).describe() == "due now"


class TestHelpers:
    @pytest.mark.parametrize("raw,expected", [(None, 1), (0, 1), (-3, 1), (1, 1), (4, 4)])
    def test_normalize_threshold(self, raw, expected):
        assert normalize_threshold(raw) == expected

    @pytest.mark.parametrize(
        "ratio,label",
        [(0.0, "good"), (0.34, "good"), (0.35, "caution"), (0.7, "warning"),
         (0.9, "urgent"), (1.0, "critical"), (3.0, "critical")],
    )
    def test_urgency_buckets(self, ratio, label):
        assert urgency_for(ratio) == label
