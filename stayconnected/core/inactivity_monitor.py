"""
StayConnected — Inactivity Monitor.

run_cycle(): the cron-driven sweep. For every running, non-muted,
non-deleted event it either
  - reminds the owner (one reminder per missed interval, while below the
    alert threshold), or
  - transitions the event to triggered and alerts its contacts, once.

notify(): the on-demand run behind the notify endpoint. Non-forced runs
follow the same trigger rule; forced runs alert contacts regardless of
status or timer and leave the status untouched.

Events are processed one at a time and in isolation: an error on one event
is logged and reported, and the sweep moves on.

Overlapping cycles are not locked against each other. The triggered
transition is a conditional row update, so only one cycle can win it and
send contact alerts; two overlapping cycles can however both send the
same owner reminder.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from stayconnected.core.overdue_evaluator import evaluate
from stayconnected.core.status_machine import EventStatusMachine
from stayconnected.core.timeutil import now_utc
from stayconnected.data.models import (
    SYSTEM_USER_ID,
    ActivityAction,
    ActivityDetails,
    EventStatus,
)
from stayconnected.ports.event_port import NullPublisher

if TYPE_CHECKING:
    from stayconnected.core.notification_dispatcher import DispatchReport, NotificationDispatcher
    from stayconnected.core.overdue_evaluator import OverdueVerdict
    from stayconnected.data.db import ActivityLogDB, EventDB, NotificationLogDB, UserDB
    from stayconnected.data.models import Event
    from stayconnected.ports.event_port import DomainEventPublisher

logger = logging.getLogger(__name__)


@dataclass
class ProcessedEvent:
    id: str
    name: str
    triggered: bool           # a running → triggered transition happened
    forced: bool
    contacts_notified: int
    notifications_sent: int = 0
    notifications_failed: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "triggered": self.triggered,
            "forced": self.forced,
            "contacts_notified": self.contacts_notified,
        }


@dataclass
class ReminderSent:
    event_id: str
    number: int
    sent: int
    failed: int


@dataclass
class CycleReport:
    processed: list[ProcessedEvent] = field(default_factory=list)
    reminders: list[ReminderSent] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)
    evaluated: int = 0

    def to_dict(self) -> dict:
        return {
            "processed": [p.to_dict() for p in self.processed],
            "reminders": [asdict(r) for r in self.reminders],
            "errors": list(self.errors),
            "evaluated": self.evaluated,
        }

    def counts(self) -> dict[str, int]:
        return {
            "evaluated": self.evaluated,
            "triggered": len(self.processed),
            "reminders": len(self.reminders),
            "errors": len(self.errors),
        }


class InactivityMonitor:
    """Evaluates events and drives the status machine and dispatcher."""

    def __init__(
        self,
        event_db: EventDB,
        user_db: UserDB,
        log_db: NotificationLogDB,
        activity_db: ActivityLogDB,
        dispatcher: NotificationDispatcher,
        publisher: DomainEventPublisher | None = None,
        default_threshold: int = 1,
    ) -> None:
        self._events = event_db
        self._users = user_db
        self._logs = log_db
        self._activity = activity_db
        self._dispatcher = dispatcher
        self._machine = EventStatusMachine(event_db, publisher or NullPublisher())
        self._default_threshold = default_threshold

    def _evaluate(self, event: Event, now: datetime) -> OverdueVerdict:
        return evaluate(
            event.last_check_in,
            event.check_in_frequency,
            event.missed_checkin_threshold or self._default_threshold,
            now=now,
        )

    def _owner_name(self, event: Event) -> str:
        owner = self._users.get_user(event.user_id)
        return owner.display_name if owner else "User"

    # -- scheduled sweep ----------------------------------------------------

    async def run_cycle(self, now: datetime | None = None) -> CycleReport:
        """One cron-triggered sweep over every monitored event."""
        now = now or now_utc()
        report = CycleReport()
        events = self._events.list_monitored()
        logger.info("Inactivity check: %d monitored events", len(events))

        for event in events:
            report.evaluated += 1
            try:
                await self._process(event, now, report)
            except Exception as exc:
                logger.error("Inactivity check failed for event %s: %s", event.id, exc)
                report.errors.append({"event_id": event.id, "error": str(exc)})

        try:
            self._activity.append(
                SYSTEM_USER_ID,
                ActivityAction.SCHEDULED_CHECK,
                details=ActivityDetails(result=report.counts()),
            )
        except Exception as exc:
            logger.error("Failed to log scheduled check: %s", exc)

        logger.info("Inactivity check completed: %s", report.counts())
        return report

    async def _process(self, event: Event, now: datetime, report: CycleReport) -> None:
        verdict = self._evaluate(event, now)
        if verdict.overdue:
            processed = await self._trigger_and_alert(event, verdict, now, forced=False)
            if processed is not None:
                report.processed.append(processed)
        elif verdict.in_reminder_phase:
            reminder = await self._remind_owner(event, verdict)
            if reminder is not None:
                report.reminders.append(reminder)

    async def _remind_owner(self, event: Event, verdict: OverdueVerdict) -> ReminderSent | None:
        number = verdict.missed_intervals
        if self._logs.has_reminder_since(event.id, number, event.last_check_in):
            logger.debug("Reminder #%d already sent for event %s", number, event.id)
            return None

        owner = self._users.get_user(event.user_id)
        if owner is None:
            logger.warning("Event %s has no registered owner; reminder skipped", event.id)
            return None

        dispatch = await self._dispatcher.dispatch_user_reminder(
            event,
            owner,
            self._users.list_push_tokens(owner.id),
            missed_intervals=number,
            reminders_left=verdict.reminders_left,
        )
        return ReminderSent(event.id, number, dispatch.sent, dispatch.failed)

    async def _trigger_and_alert(
        self,
        event: Event,
        verdict: OverdueVerdict | None,
        now: datetime,
        forced: bool,
    ) -> ProcessedEvent | None:
        """Trigger (unless forced) then alert contacts.

        Returns None when the trigger transition was not won, in which case
        nothing was sent.
        """
        triggered = False
        if not forced:
            triggered = self._machine.trigger(event, verdict, now)
            if not triggered:
                return None

        dispatch = await self._dispatcher.dispatch_contact_alerts(
            event,
            self._events.get_contacts(event.id),
            owner_name=self._owner_name(event),
            verdict=verdict,
        )
        self._log_dispatch(event, dispatch, forced, triggered)
        return ProcessedEvent(
            id=event.id,
            name=event.name,
            triggered=triggered,
            forced=forced,
            contacts_notified=dispatch.contacts_notified,
            notifications_sent=dispatch.sent,
            notifications_failed=dispatch.failed,
        )

    def _log_dispatch(self, event: Event, dispatch: DispatchReport, forced: bool, triggered: bool) -> None:
        action = ActivityAction.EVENT_TRIGGERED if triggered and not forced else ActivityAction.MANUAL_NOTIFICATION
        details = ActivityDetails(
            event_name=event.name,
            notifications_sent=dispatch.sent,
            notifications_failed=dispatch.failed,
        )
        if action is ActivityAction.MANUAL_NOTIFICATION:
            details.forced = forced
            details.notification_attempts = len(dispatch.results)
        try:
            self._activity.append(event.user_id, action, event.id, details)
        except Exception as exc:
            logger.error("Failed to log %s for event %s: %s", action.value, event.id, exc)

    # -- on-demand run ------------------------------------------------------

    async def notify(
        self,
        caller_id: str,
        event_ids: list[str] | None = None,
        force: bool = False,
        now: datetime | None = None,
    ) -> list[ProcessedEvent]:
        """Alert contacts for the caller's events.

        Non-forced: only running events that are overdue, and only once per
        overdue episode. Forced: every selected non-deleted, non-muted event,
        with no status change.
        """
        now = now or now_utc()
        events = self._events.list_for_user(
            caller_id,
            event_ids=event_ids or None,
            status=None if force else EventStatus.RUNNING,
            include_muted=False,
        )
        logger.info(
            "Notify run for %s: %d candidate events (force=%s)", caller_id, len(events), force,
        )

        processed: list[ProcessedEvent] = []
        for event in events:
            try:
                verdict = None if force else self._evaluate(event, now)
                if verdict is not None and not verdict.overdue:
                    continue
                result = await self._trigger_and_alert(event, verdict, now, forced=force)
            except Exception as exc:
                logger.error("Notify failed for event %s: %s", event.id, exc)
                continue
            if result is not None:
                processed.append(result)
        return processed
