"""Tests for stayconnected.core.inactivity_monitor — cron cycle and notify runs."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from stayconnected.core.inactivity_monitor import InactivityMonitor
from stayconnected.core.notification_dispatcher import NotificationDispatcher
from stayconnected.data.models import (
    ActivityAction,
    Channel,
    EventStatus,
    NotificationCategory,
    NotificationStatus,
)
from stayconnected.ports.event_port import EVENT_TRIGGERED


@pytest.fixture
def publisher():
    return MagicMock()


@pytest.fixture
def monitor(event_db, user_db, log_db, activity_db, senders, publisher):
    dispatcher = NotificationDispatcher(log_db, senders)
    return InactivityMonitor(event_db, user_db, log_db, activity_db, dispatcher, publisher)


@pytest.fixture
def contacts(contact_db):
    return [
        contact_db.add_contact("user-1", "Bob", "bob@example.com", notification_preference="email"),
        contact_db.add_contact("user-1", "Carol", phone="+15550003", notification_preference="sms"),
    ]


@pytest.fixture
def overdue_event(event_db, owner, contacts, hours_ago):
    event = event_db.add_event("user-1", "Daily walk", "1 day", 2, now=hours_ago(50))
    event_db.set_contacts(event.id, [c.id for c in contacts])
    return event


class TestRunCycle:
    @pytest.mark.asyncio
    async def test_overdue_event_triggers_and_alerts_contacts(
        self, monitor, overdue_event, event_db, log_db, senders, publisher,
    ):
        report = await monitor.run_cycle()

        assert [p.id for p in report.processed] == [overdue_event.id]
        assert report.processed[0].contacts_notified == 2
        assert event_db.get_event(overdue_event.id).status is EventStatus.TRIGGERED
        alerts = log_db.list_for_event(overdue_event.id, NotificationCategory.CONTACT_ALERT)
        assert {l.recipient for l in alerts} == {"bob@example.com", "+15550003"}
        assert all(l.status is NotificationStatus.SENT for l in alerts)
        assert "has not checked in" in senders[Channel.EMAIL].sent[0][2]
        assert publisher.publish.call_args[0][0].kind == EVENT_TRIGGERED

    @pytest.mark.asyncio
    async def test_two_cycles_trigger_once(self, monitor, overdue_event, log_db):
        first = await monitor.run_cycle()
        second = await monitor.run_cycle()

        assert len(first.processed) == 1
        assert second.processed == []
        alerts = log_db.list_for_event(overdue_event.id, NotificationCategory.CONTACT_ALERT)
        assert len(alerts) == 2

    @pytest.mark.asyncio
    async def test_not_yet_due_event_untouched(self, monitor, event_db, owner, hours_ago, log_db):
        event = event_db.add_event("user-1", "Walk", "1 day", 2, now=hours_ago(10))
        report = await monitor.run_cycle()
        assert report.processed == []
        assert report.reminders == []
        assert event_db.get_event(event.id).status is EventStatus.RUNNING
        assert log_db.list_for_event(event.id) == []

    @pytest.mark.asyncio
    async def test_paused_and_muted_events_skipped(self, monitor, event_db, owner, hours_ago, now):
        paused = event_db.add_event("user-1", "Paused", "1 day", now=hours_ago(50))
        event_db.set_status(paused.id, EventStatus.PAUSED, frozenset({EventStatus.RUNNING}), now)
        event_db.add_event("user-1", "Muted", "1 day", muted=True, now=hours_ago(50))

        report = await monitor.run_cycle()

        assert report.evaluated == 0
        assert event_db.get_event(paused.id).status is EventStatus.PAUSED

    @pytest.mark.asyncio
    async def test_reminder_sent_once_per_missed_interval(
        self, monitor, event_db, owner, hours_ago, log_db, senders,
    ):
        event = event_db.add_event("user-1", "Meds", "1 day", 3, now=hours_ago(26))

        first = await monitor.run_cycle()
        second = await monitor.run_cycle()

        assert [(r.event_id, r.number) for r in first.reminders] == [(event.id, 1)]
        assert second.reminders == []
        reminders = log_db.list_for_event(event.id, NotificationCategory.USER_REMINDER)
        assert len(reminders) == 1
        assert reminders[0].recipient == "alice@example.com"
        assert reminders[0].content.startswith("Reminder #1:")
        assert "2 reminders left" in reminders[0].content
        assert event_db.get_event(event.id).status is EventStatus.RUNNING

    @pytest.mark.asyncio
    async def test_reminder_goes_to_push_tokens(self, monitor, event_db, owner, user_db, hours_ago, senders):
        user_db.add_push_token("user-1", "ExponentPushToken[abc]")
        event_db.add_event("user-1", "Meds", "1 day", 2, now=hours_ago(25))

        await monitor.run_cycle()

        assert senders[Channel.PUSH].sent[0][0] == "ExponentPushToken[abc]"

    @pytest.mark.asyncio
    async def test_failing_event_does_not_stop_cycle(
        self, event_db, user_db, log_db, activity_db, owner, contacts, hours_ago,
    ):
        first = event_db.add_event("user-1", "First", "1 day", now=hours_ago(60))
        second = event_db.add_event("user-1", "Second", "1 day", now=hours_ago(50))
        event_db.set_contacts(second.id, [contacts[0].id])

        dispatcher = MagicMock()
        dispatcher.dispatch_contact_alerts = AsyncMock(
            side_effect=[RuntimeError("boom"), MagicMock(contacts_notified=1, sent=1, failed=0, results=[])],
        )
        monitor = InactivityMonitor(event_db, user_db, log_db, activity_db, dispatcher)

        report = await monitor.run_cycle()

        assert report.errors == [{"event_id": first.id, "error": "boom"}]
        assert [p.id for p in report.processed] == [second.id]
        assert event_db.get_event(second.id).status is EventStatus.TRIGGERED

    @pytest.mark.asyncio
    async def test_scheduled_check_logged_for_system(self, monitor, overdue_event, activity_db):
        await monitor.run_cycle()
        entry = activity_db.list_for_user("system")[0]
        assert entry.action is ActivityAction.SCHEDULED_CHECK
        assert entry.details.result["triggered"] == 1

    @pytest.mark.asyncio
    async def test_trigger_logged_for_owner(self, monitor, overdue_event, activity_db):
        await monitor.run_cycle()
        actions = [e.action for e in activity_db.list_for_event(overdue_event.id)]
        assert actions == [ActivityAction.EVENT_TRIGGERED]


class TestNotify:
    @pytest.mark.asyncio
    async def test_non_forced_triggers_overdue_only(self, monitor, overdue_event, event_db, hours_ago):
        fresh = event_db.add_event("user-1", "Fresh", "1 day", now=hours_ago(1))

        processed = await monitor.notify("user-1")

        assert [p.id for p in processed] == [overdue_event.id]
        assert processed[0].to_dict() == {
            "id": overdue_event.id,
            "name": "Daily walk",
            "triggered": True,
            "forced": False,
            "contacts_notified": 2,
        }
        assert event_db.get_event(fresh.id).status is EventStatus.RUNNING

    @pytest.mark.asyncio
    async def test_forced_on_paused_event_keeps_status(
        self, monitor, event_db, owner, contacts, hours_ago, now, log_db, activity_db, senders,
    ):
        event = event_db.add_event("user-1", "Trip", "1 day", now=hours_ago(1))
        event_db.set_contacts(event.id, [contacts[0].id])
        event_db.set_status(event.id, EventStatus.PAUSED, frozenset({EventStatus.RUNNING}), now)

        processed = await monitor.notify("user-1", [event.id], force=True)

        assert processed[0].forced is True
        assert processed[0].triggered is False
        assert processed[0].contacts_notified == 1
        assert event_db.get_event(event.id).status is EventStatus.PAUSED
        assert "Check-in alert" in senders[Channel.EMAIL].sent[0][2]
        entry = activity_db.list_for_event(event.id)[-1]
        assert entry.action is ActivityAction.MANUAL_NOTIFICATION
        assert entry.details.forced is True

    @pytest.mark.asyncio
    async def test_non_forced_ignores_paused(self, monitor, event_db, owner, hours_ago, now):
        event = event_db.add_event("user-1", "Trip", "1 day", now=hours_ago(50))
        event_db.set_status(event.id, EventStatus.PAUSED, frozenset({EventStatus.RUNNING}), now)
        assert await monitor.notify("user-1", [event.id]) == []

    @pytest.mark.asyncio
    async def test_other_users_events_not_selected(self, monitor, overdue_event):
        assert await monitor.notify("user-2", [overdue_event.id], force=True) == []

    @pytest.mark.asyncio
    async def test_muted_excluded_even_when_forced(self, monitor, event_db, owner):
        event = event_db.add_event("user-1", "Quiet", "1 day", muted=True)
        assert await monitor.notify("user-1", [event.id], force=True) == []
