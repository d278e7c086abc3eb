"""Tests for stayconnected.data.models — dataclasses, enums, activity details."""

import pydantic
import pytest

from stayconnected.data.models import (
    ActivityDetails,
    Event,
    EventStatus,
    PREFERENCE_CHANNELS,
    Channel,
)


def test_event_defaults():
    event = Event(
        id="e-1",
        user_id="u-1",
        name="Daily walk",
        check_in_frequency="1 day",
        missed_checkin_threshold=1,
        last_check_in="2025-03-10T12:00:00.000000+00:00",
    )
    assert event.status is EventStatus.RUNNING
    assert event.muted is False
    assert event.deleted is False
    assert event.notification_content is None
    assert event.last_trigger_time is None


def test_status_enum_compares_to_string():
    assert EventStatus.TRIGGERED == "triggered"
    assert EventStatus("paused") is EventStatus.PAUSED


def test_preference_channels():
    assert PREFERENCE_CHANNELS["both"] == (Channel.EMAIL, Channel.SMS)
    assert "push" not in PREFERENCE_CHANNELS


class TestActivityDetails:
    def test_known_keys(self):
        details = ActivityDetails(forced=True, notification_attempts=3, notifications_sent=2)
        assert details.forced is True
        assert details.notifications_failed is None

    def test_unknown_key_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            ActivityDetails(color="red")

    def test_json_omits_unset(self):
        details = ActivityDetails(event_name="Walk")
        assert details.model_dump_json(exclude_none=True) == '{"event_name":"Walk"}'
