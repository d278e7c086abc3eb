"""Overdue evaluation — pure business logic.

One evaluator for every caller. An event is overdue once
``now - last_check_in >= threshold * frequency``. A missing threshold
counts as 1, which makes the plain "elapsed >= frequency" check the
threshold-1 case of the same rule.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from stayconnected.core.interval_parser import humanize_ms, parse_interval
from stayconnected.core.timeutil import now_utc, parse_timestamp

logger = logging.getLogger(__name__)

# Upper bounds of elapsed / alert-window for each urgency bucket
_URGENCY_BUCKETS: tuple[tuple[float, str], ...] = (
    (0.35, "good"),
    (0.65, "caution"),
    (0.85, "warning"),
    (1.0, "urgent"),
)
_CRITICAL = "critical"


@dataclass(frozen=True)
class OverdueVerdict:
    """Result of evaluating one event at one instant."""

    overdue: bool
    frequency_ms: int
    threshold: int
    elapsed_ms: int
    alert_window_ms: int
    time_left_ms: int          # negative once overdue
    missed_intervals: int      # whole frequencies elapsed since last check-in
    ratio: float               # elapsed / alert window
    urgency: str               # good | caution | warning | urgent | critical

    @property
    def reminders_left(self) -> int:
        return max(self.threshold - self.missed_intervals, 0)

    @property
    def in_reminder_phase(self) -> bool:
        """At least one interval missed but the alert threshold not reached."""
        return self.frequency_ms > 0 and 1 <= self.missed_intervals < self.threshold

    def describe(self) -> str:
        """Display text such as "3 hours left" or "2 days overdue"."""
        if self.frequency_ms == 0:
            return "no deadline"
        if self.time_left_ms > 0:
            return f"{humanize_ms(self.time_left_ms)} left"
        if self.time_left_ms == 0:
            return "due now"
        return f"{humanize_ms(-self.time_left_ms)} overdue"


def normalize_threshold(threshold: int | None) -> int:
    if threshold is None or threshold < 1:
        return 1
    return threshold


def urgency_for(ratio: float) -> str:
    for upper, label in _URGENCY_BUCKETS:
        if ratio < upper:
            return label
    return _CRITICAL


def evaluate(
    last_check_in: str | datetime,
    check_in_frequency: str,
    missed_checkin_threshold: int | None = None,
    now: datetime | None = None,
) -> OverdueVerdict:
    """Evaluate whether an event is past its alert window.

    Args:
        last_check_in: ISO timestamp or datetime of the last check-in.
        check_in_frequency: Interval string, e.g. "1 day".
        missed_checkin_threshold: Missed intervals tolerated; None → 1.
        now: Evaluation instant (defaults to the current UTC time).

    An unparseable frequency yields frequency_ms == 0: never overdue,
    urgency "good".
    """
    now = parse_timestamp(now) if now is not None else now_utc()
    last = parse_timestamp(last_check_in)
    threshold = normalize_threshold(missed_checkin_threshold)

    frequency_ms = parse_interval(check_in_frequency)
    elapsed_ms = max(int((now - last).total_seconds() * 1000), 0)
    alert_window_ms = threshold * frequency_ms

    if frequency_ms == 0:
        return OverdueVerdict(
            overdue=False,
            frequency_ms=0,
            threshold=threshold,
            elapsed_ms=elapsed_ms,
            alert_window_ms=0,
            time_left_ms=0,
            missed_intervals=0,
            ratio=0.0,
            urgency="good",
        )

    time_left_ms = alert_window_ms - elapsed_ms
    ratio = elapsed_ms / alert_window_ms
    return OverdueVerdict(
        overdue=time_left_ms <= 0,
        frequency_ms=frequency_ms,
        threshold=threshold,
        elapsed_ms=elapsed_ms,
        alert_window_ms=alert_window_ms,
        time_left_ms=time_left_ms,
        missed_intervals=elapsed_ms // frequency_ms,
        ratio=ratio,
        urgency=urgency_for(ratio),
    )
