"""
StayConnected — Notification Dispatcher.

Fans a triggered (or forced) event out to its contacts, and overdue-soon
reminders out to the event owner. Each (recipient, channel) pair is one
attempt with its own NotificationLog row:

    insert pending -> call sender -> mark sent | mark failed(error)

Attempts run concurrently and never affect each other: one contact's
failed SMS leaves their email and every other contact untouched.

This module is provider-agnostic: it depends on the NotificationSender
protocol, not on specific implementations.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from stayconnected.core.interval_parser import humanize_ms
from stayconnected.data.models import Channel, NotificationCategory

if TYPE_CHECKING:
    from stayconnected.core.overdue_evaluator import OverdueVerdict
    from stayconnected.data.db import NotificationLogDB
    from stayconnected.data.models import Contact, Event, User
    from stayconnected.ports.notification_port import NotificationSender

logger = logging.getLogger(__name__)

_SMS_SIGNATURE = " - Stay Connected"

_SUBJECTS = {
    NotificationCategory.USER_REMINDER: "Check-in Reminder",
    NotificationCategory.CONTACT_ALERT: "Emergency Alert",
    NotificationCategory.EVENT_TRIGGER: "Emergency Alert",
}


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class Attempt:
    channel: Channel
    recipient: str
    content: str
    contact_id: str | None = None


@dataclass
class AttemptResult:
    channel: Channel
    recipient: str
    sent: bool
    log_id: str | None = None
    contact_id: str | None = None
    error: str | None = None


@dataclass
class DispatchReport:
    event_id: str
    category: NotificationCategory
    results: list[AttemptResult] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.sent)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.sent)

    @property
    def contacts_notified(self) -> int:
        """Distinct contacts reached on at least one channel."""
        return len({r.contact_id for r in self.results if r.sent and r.contact_id})


# ---------------------------------------------------------------------------
# Message templates
# ---------------------------------------------------------------------------


def build_contact_alert(
    event: Event,
    owner_name: str,
    channel: Channel,
    verdict: OverdueVerdict | None = None,
) -> str:
    """Alert text for a contact. A custom notification_content wins."""
    if event.notification_content:
        return event.notification_content

    owner_name = owner_name or "User"
    if verdict is not None and verdict.elapsed_ms > 0:
        text = (
            f'ALERT: {owner_name} has not checked in for "{event.name}" '
            f"in over {humanize_ms(verdict.elapsed_ms)}. Please check on them."
        )
    else:
        text = f'ALERT: Check-in alert for "{event.name}" from {owner_name}. Please check on them.'
    if channel is Channel.SMS:
        text += _SMS_SIGNATURE
    return text


def build_user_reminder(event: Event, missed_intervals: int, reminders_left: int, channel: Channel) -> str:
    """Reminder text for the event owner, numbered by missed interval."""
    left = "1 reminder left" if reminders_left == 1 else f"{reminders_left} reminders left"
    text = (
        f'Reminder #{missed_intervals}: Time to check in for "{event.name}". '
        f"{left} before contacts are alerted."
    )
    if channel is Channel.SMS:
        text += _SMS_SIGNATURE
    return text


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class NotificationDispatcher:
    """Creates log rows and drives senders for each delivery attempt."""

    def __init__(
        self,
        log_db: NotificationLogDB,
        senders: dict[Channel, NotificationSender],
    ) -> None:
        self._logs = log_db
        self._senders = senders

    async def dispatch_contact_alerts(
        self,
        event: Event,
        contacts: list[Contact],
        owner_name: str = "User",
        verdict: OverdueVerdict | None = None,
    ) -> DispatchReport:
        """Alert every non-deleted contact on each channel they have enabled.

        Channels with no recipient value are skipped silently. An empty
        result (no eligible attempts) is not an error.
        """
        attempts = [
            Attempt(
                channel=channel,
                recipient=recipient,
                content=build_contact_alert(event, owner_name, channel, verdict),
                contact_id=contact.id,
            )
            for contact in contacts
            if not contact.deleted
            for channel, recipient in contact.channels()
        ]
        return await self._run(event, NotificationCategory.CONTACT_ALERT, attempts)

    async def dispatch_user_reminder(
        self,
        event: Event,
        owner: User,
        push_tokens: list[str],
        missed_intervals: int,
        reminders_left: int,
    ) -> DispatchReport:
        """Remind the owner on every channel they can be reached on."""
        targets: list[tuple[Channel, str]] = []
        if owner.email:
            targets.append((Channel.EMAIL, owner.email))
        if owner.phone:
            targets.append((Channel.SMS, owner.phone))
        targets.extend((Channel.PUSH, token) for token in push_tokens if token)

        attempts = [
            Attempt(
                channel=channel,
                recipient=recipient,
                content=build_user_reminder(event, missed_intervals, reminders_left, channel),
            )
            for channel, recipient in targets
        ]
        return await self._run(event, NotificationCategory.USER_REMINDER, attempts)

    async def _run(
        self, event: Event, category: NotificationCategory, attempts: list[Attempt],
    ) -> DispatchReport:
        report = DispatchReport(event_id=event.id, category=category)
        if not attempts:
            logger.info("No eligible %s recipients for event %s", category.value, event.id)
            return report

        results = await asyncio.gather(
            *(self._attempt(event, category, a) for a in attempts)
        )
        report.results.extend(results)
        logger.info(
            "Event %s %s: %d sent, %d failed",
            event.id, category.value, report.sent, report.failed,
        )
        return report

    async def _attempt(
        self, event: Event, category: NotificationCategory, attempt: Attempt,
    ) -> AttemptResult:
        result = AttemptResult(
            channel=attempt.channel,
            recipient=attempt.recipient,
            sent=False,
            contact_id=attempt.contact_id,
        )
        try:
            log = self._logs.create(
                event.id, attempt.channel, attempt.recipient, attempt.content, category,
            )
        except Exception as exc:
            logger.error(
                "Could not log %s attempt for event %s: %s",
                attempt.channel.value, event.id, exc,
            )
            result.error = str(exc)
            return result
        result.log_id = log.id

        sender = self._senders.get(attempt.channel)
        try:
            if sender is None:
                raise LookupError(f"{attempt.channel.value} sender not configured")
            await sender.send(attempt.recipient, _SUBJECTS[category], attempt.content)
        except Exception as exc:
            result.error = str(exc) or type(exc).__name__
            logger.error(
                "Failed to send %s to %s for event %s: %s",
                attempt.channel.value, attempt.recipient, event.id, result.error,
            )
            self._record(self._logs.mark_failed, log.id, result.error)
            return result

        result.sent = True
        self._record(self._logs.mark_sent, log.id)
        return result

    @staticmethod
    def _record(update, log_id: str, *args) -> None:
        """Write the attempt outcome; a failed write is logged, not raised."""
        try:
            update(log_id, *args)
        except Exception as exc:
            logger.error("Could not update notification log %s: %s", log_id, exc)
