"""
StayConnected — Check-in Service.

User-initiated actions on events and contacts: check in, create, edit,
pause, resume, delete. Every call validates input and ownership before
touching the datastore, and appends one ActivityLog entry per mutation.

The caller id is trusted: authentication happens upstream.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from stayconnected.core.errors import AuthorizationError, NotFoundError, ValidationError
from stayconnected.core.interval_parser import is_valid_interval
from stayconnected.core.overdue_evaluator import OverdueVerdict, evaluate
from stayconnected.core.status_machine import EventStatusMachine
from stayconnected.core.timeutil import now_utc, to_iso
from stayconnected.data.models import (
    PREFERENCE_CHANNELS,
    SOCIAL_MEDIA_KEYS,
    ActivityAction,
    ActivityDetails,
)
from stayconnected.ports.event_port import (
    CHECK_IN_PERFORMED,
    CONTACT_UPDATED,
    EVENT_UPDATED,
    DomainEvent,
    NullPublisher,
)

if TYPE_CHECKING:
    from stayconnected.data.db import ActivityLogDB, ContactDB, EventDB, NotificationLogDB
    from stayconnected.data.models import Contact, Event
    from stayconnected.ports.event_port import DomainEventPublisher

logger = logging.getLogger(__name__)


@dataclass
class CheckInResult:
    success: bool
    timestamp: str
    cancelled_notifications: int = 0


@dataclass
class EventStatusView:
    """Display data for one event: stored status plus the live verdict."""

    event: Event
    verdict: OverdueVerdict

    def to_dict(self) -> dict:
        return {
            "id": self.event.id,
            "name": self.event.name,
            "status": self.event.status.value,
            "overdue": self.verdict.overdue,
            "urgency": self.verdict.urgency,
            "time_left_ms": self.verdict.time_left_ms,
            "description": self.verdict.describe(),
            "last_check_in": self.event.last_check_in,
        }


_REQUIRED_EVENT_FIELDS = ("name", "check_in_frequency", "missed_checkin_threshold", "muted")


def _validate_event_fields(
    name: str | None, check_in_frequency: str | None, missed_checkin_threshold: int | None,
) -> None:
    if name is not None and not name.strip():
        raise ValidationError("Event name is required")
    if check_in_frequency is not None and not is_valid_interval(check_in_frequency):
        raise ValidationError(
            f"Invalid check-in frequency {check_in_frequency!r}; "
            "expected e.g. '12 hours' or '1 day'"
        )
    if missed_checkin_threshold is not None and missed_checkin_threshold < 1:
        raise ValidationError("Missed check-in threshold must be at least 1")


class CheckInService:
    """Owner-scoped event and contact operations."""

    def __init__(
        self,
        event_db: EventDB,
        contact_db: ContactDB,
        log_db: NotificationLogDB,
        activity_db: ActivityLogDB,
        publisher: DomainEventPublisher | None = None,
    ) -> None:
        self._events = event_db
        self._contacts = contact_db
        self._logs = log_db
        self._activity = activity_db
        self._publisher = publisher or NullPublisher()
        self._machine = EventStatusMachine(event_db, self._publisher)

    # -- lookups ------------------------------------------------------------

    def _owned_event(self, event_id: str, caller_id: str) -> Event:
        if not event_id:
            raise ValidationError("Event ID is required")
        event = self._events.get_event(event_id)
        if event is None or event.deleted:
            raise NotFoundError(f"Event not found: {event_id}")
        if event.user_id != caller_id:
            raise AuthorizationError("Event does not belong to the caller")
        return event

    def _owned_contact(self, contact_id: str, caller_id: str) -> Contact:
        if not contact_id:
            raise ValidationError("Contact ID is required")
        contact = self._contacts.get_contact(contact_id)
        if contact is None or contact.deleted:
            raise NotFoundError(f"Contact not found: {contact_id}")
        if contact.user_id != caller_id:
            raise AuthorizationError("Contact does not belong to the caller")
        return contact

    def _log(self, caller_id: str, action: ActivityAction, event_id: str | None = None, **details) -> None:
        self._activity.append(caller_id, action, event_id, ActivityDetails(**details))

    def _publish(self, kind: str, caller_id: str, event_id: str | None = None, **payload) -> None:
        self._publisher.publish(DomainEvent(kind=kind, user_id=caller_id, event_id=event_id, payload=payload))

    # -- check-in -----------------------------------------------------------

    def check_in(self, event_id: str, caller_id: str, now: datetime | None = None) -> CheckInResult:
        """Reset the event's timer to now and return it to running.

        Calling twice in a row is fine: each call simply resets the timer.
        Pending notifications for the event are cancelled.
        """
        now = now or now_utc()
        event = self._owned_event(event_id, caller_id)
        self._machine.check_in(event, now)
        stamp = to_iso(now)

        try:
            cancelled = self._logs.cancel_pending(event.id)
        except Exception as exc:
            # The check-in itself is already persisted.
            logger.error("Failed to clear pending notifications for %s: %s", event.id, exc)
            cancelled = 0

        self._log(caller_id, ActivityAction.CHECK_IN, event.id, timestamp=stamp, event_name=event.name)
        self._publish(CHECK_IN_PERFORMED, caller_id, event.id, timestamp=stamp)
        logger.info("Check-in for event %s '%s' at %s", event.id, event.name, stamp)
        return CheckInResult(success=True, timestamp=stamp, cancelled_notifications=cancelled)

    # -- events -------------------------------------------------------------

    def create_event(
        self,
        caller_id: str,
        name: str,
        check_in_frequency: str,
        missed_checkin_threshold: int = 1,
        contact_ids: list[str] | None = None,
        memo: str | None = None,
        notification_content: str | None = None,
        now: datetime | None = None,
    ) -> Event:
        _validate_event_fields(name or "", check_in_frequency or "", missed_checkin_threshold)
        contact_ids = list(dict.fromkeys(contact_ids or []))
        for contact_id in contact_ids:
            self._owned_contact(contact_id, caller_id)

        event = self._events.add_event(
            user_id=caller_id,
            name=name.strip(),
            check_in_frequency=check_in_frequency.strip(),
            missed_checkin_threshold=missed_checkin_threshold,
            memo=memo,
            notification_content=notification_content or None,
            now=now,
        )
        if contact_ids:
            self._events.set_contacts(event.id, contact_ids)
        self._log(caller_id, ActivityAction.CREATE_EVENT, event.id, event_name=event.name)
        self._publish(EVENT_UPDATED, caller_id, event.id, status=event.status.value)
        return event

    def update_event(
        self,
        event_id: str,
        caller_id: str,
        changes: dict,
        contact_ids: list[str] | None = None,
    ) -> Event:
        """Edit user-editable fields and, optionally, the contact list."""
        event = self._owned_event(event_id, caller_id)
        changes = dict(changes)
        for field in _REQUIRED_EVENT_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be empty")
        for field in ("name", "check_in_frequency"):
            if isinstance(changes.get(field), str):
                changes[field] = changes[field].strip()
        _validate_event_fields(
            changes.get("name"),
            changes.get("check_in_frequency"),
            changes.get("missed_checkin_threshold"),
        )
        for contact_id in contact_ids or []:
            self._owned_contact(contact_id, caller_id)
        try:
            updated = self._events.update_event(event.id, changes)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if contact_ids is not None:
            self._events.set_contacts(event.id, list(dict.fromkeys(contact_ids)))

        self._log(caller_id, ActivityAction.UPDATE_EVENT, event.id, event_name=updated.name)
        self._publish(EVENT_UPDATED, caller_id, event.id, status=updated.status.value)
        return updated

    def pause_event(self, event_id: str, caller_id: str, now: datetime | None = None) -> Event:
        event = self._owned_event(event_id, caller_id)
        self._machine.pause(event, now or now_utc())
        self._log(caller_id, ActivityAction.PAUSE_EVENT, event.id, event_name=event.name)
        return self._after_status_change(event, caller_id)

    def resume_event(self, event_id: str, caller_id: str, now: datetime | None = None) -> Event:
        event = self._owned_event(event_id, caller_id)
        self._machine.resume(event, now or now_utc())
        self._log(caller_id, ActivityAction.RESUME_EVENT, event.id, event_name=event.name)
        return self._after_status_change(event, caller_id)

    def delete_event(self, event_id: str, caller_id: str, now: datetime | None = None) -> None:
        event = self._owned_event(event_id, caller_id)
        self._machine.soft_delete(event, now or now_utc())
        self._log(caller_id, ActivityAction.DELETE_EVENT, event.id, event_name=event.name)
        self._publish(EVENT_UPDATED, caller_id, event.id, status="deleted")

    def _after_status_change(self, event: Event, caller_id: str) -> Event:
        updated = self._events.get_event(event.id)
        self._publish(EVENT_UPDATED, caller_id, event.id, status=updated.status.value)
        return updated

    def event_status(self, event_id: str, caller_id: str, now: datetime | None = None) -> EventStatusView:
        event = self._owned_event(event_id, caller_id)
        verdict = evaluate(
            event.last_check_in,
            event.check_in_frequency,
            event.missed_checkin_threshold,
            now=now,
        )
        return EventStatusView(event=event, verdict=verdict)

    # -- contacts -----------------------------------------------------------

    def create_contact(
        self,
        caller_id: str,
        name: str,
        email: str | None = None,
        phone: str | None = None,
        notification_preference: str = "both",
        social_media: dict[str, str] | None = None,
    ) -> Contact:
        if not (name or "").strip():
            raise ValidationError("Contact name is required")
        if not (email or "").strip() and not (phone or "").strip():
            raise ValidationError("A contact needs an email address or a phone number")
        if notification_preference not in PREFERENCE_CHANNELS:
            raise ValidationError(
                f"Invalid notification preference {notification_preference!r}; "
                f"expected one of {', '.join(PREFERENCE_CHANNELS)}"
            )
        unknown = set(social_media or {}) - SOCIAL_MEDIA_KEYS
        if unknown:
            raise ValidationError(f"Unknown social media keys: {', '.join(sorted(unknown))}")

        contact = self._contacts.add_contact(
            caller_id, name, email, phone, notification_preference, social_media,
        )
        self._log(caller_id, ActivityAction.CREATE_CONTACT, contact_name=contact.name)
        self._publish(CONTACT_UPDATED, caller_id, contact_id=contact.id)
        return contact

    def delete_contact(self, contact_id: str, caller_id: str) -> None:
        """Soft-delete. Event associations stay but the contact is no longer alerted."""
        contact = self._owned_contact(contact_id, caller_id)
        self._contacts.delete_contact(contact.id)
        self._log(caller_id, ActivityAction.DELETE_CONTACT, contact_name=contact.name)
        self._publish(CONTACT_UPDATED, caller_id, contact_id=contact.id, deleted=True)
