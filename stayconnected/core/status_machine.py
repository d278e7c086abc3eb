"""Event status machine.

    running  --overdue-->      triggered
    running  <--pause/resume-> paused
    triggered --pause-->       paused
    triggered|paused --resume--> running
    running|triggered|paused --check-in--> running
    any      --soft delete-->  deleted

Every change is persisted as a conditional row update, so a transition
either applies to the status it was computed from or not at all. Forced
notification runs never go through this module.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from stayconnected.core.errors import InvalidTransitionError
from stayconnected.data.models import EventStatus
from stayconnected.ports.event_port import EVENT_TRIGGERED, DomainEvent, NullPublisher

if TYPE_CHECKING:
    from stayconnected.core.overdue_evaluator import OverdueVerdict
    from stayconnected.data.db import EventDB
    from stayconnected.data.models import Event
    from stayconnected.ports.event_port import DomainEventPublisher

logger = logging.getLogger(__name__)

_LIVE = frozenset({EventStatus.RUNNING, EventStatus.TRIGGERED, EventStatus.PAUSED})

# action → (statuses it may start from, resulting status)
TRANSITIONS: dict[str, tuple[frozenset[EventStatus], EventStatus]] = {
    "trigger": (frozenset({EventStatus.RUNNING}), EventStatus.TRIGGERED),
    "pause": (frozenset({EventStatus.RUNNING, EventStatus.TRIGGERED}), EventStatus.PAUSED),
    "resume": (frozenset({EventStatus.PAUSED, EventStatus.TRIGGERED}), EventStatus.RUNNING),
    "check_in": (_LIVE, EventStatus.RUNNING),
    "delete": (_LIVE, EventStatus.DELETED),
}


def can_apply(action: str, current: EventStatus) -> bool:
    allowed_from, _ = TRANSITIONS[action]
    return EventStatus(current) in allowed_from


def should_trigger(event: Event, verdict: OverdueVerdict) -> bool:
    """Gate for running → triggered: overdue, running, not muted, not deleted."""
    return (
        verdict.overdue
        and event.status == EventStatus.RUNNING
        and not event.muted
        and not event.deleted
    )


class EventStatusMachine:
    """Applies status transitions to stored events."""

    def __init__(
        self,
        event_db: EventDB,
        publisher: DomainEventPublisher | None = None,
    ) -> None:
        self._events = event_db
        self._publisher = publisher or NullPublisher()

    def _require(self, action: str, event: Event) -> None:
        if event.deleted or not can_apply(action, event.status):
            raise InvalidTransitionError(
                f"Cannot {action.replace('_', '-')} event '{event.name}' "
                f"while it is {event.status.value}"
            )

    def trigger(self, event: Event, verdict: OverdueVerdict, now: datetime) -> bool:
        """Move an overdue running event to triggered.

        Returns True only for the caller that performed the transition.
        Re-running against a triggered event, or losing a race to another
        cycle, returns False and has no side effects.
        """
        if not should_trigger(event, verdict):
            return False
        if not self._events.mark_triggered(event.id, now):
            logger.info("Event %s was no longer running; trigger skipped", event.id)
            return False

        logger.warning(
            "Event %s '%s' triggered (%s)", event.id, event.name, verdict.describe(),
        )
        self._publisher.publish(DomainEvent(
            kind=EVENT_TRIGGERED,
            user_id=event.user_id,
            event_id=event.id,
            payload={"elapsed_ms": verdict.elapsed_ms},
        ))
        return True

    def pause(self, event: Event, now: datetime) -> None:
        self._apply("pause", event, now)

    def resume(self, event: Event, now: datetime) -> None:
        self._apply("resume", event, now)

    def check_in(self, event: Event, now: datetime) -> None:
        """Reset the event's timer and return it to running."""
        self._require("check_in", event)
        if not self._events.record_check_in(event.id, now):
            raise InvalidTransitionError(f"Event '{event.name}' can no longer be checked in")

    def soft_delete(self, event: Event, now: datetime) -> None:
        self._require("delete", event)
        if not self._events.soft_delete(event.id, now):
            raise InvalidTransitionError(f"Event '{event.name}' is already deleted")

    def _apply(self, action: str, event: Event, now: datetime) -> None:
        self._require(action, event)
        allowed_from, target = TRANSITIONS[action]
        if not self._events.set_status(event.id, target, allowed_from, now):
            raise InvalidTransitionError(
                f"Event '{event.name}' changed status before it could be {target.value}"
            )
        logger.info("Event %s: %s → %s", event.id, event.status.value, target.value)
