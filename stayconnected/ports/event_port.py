"""Domain event port — abstract interface for change notifications.

Core modules emit domain events through this protocol; presentation layers
(live dashboards, mobile refresh) subscribe on the adapter side.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

EVENT_TRIGGERED = "event_triggered"
CHECK_IN_PERFORMED = "check_in_performed"
EVENT_UPDATED = "event_updated"
CONTACT_UPDATED = "contact_updated"


@dataclass(frozen=True)
class DomainEvent:
    kind: str
    user_id: str
    event_id: str | None = None
    payload: dict = field(default_factory=dict)


class DomainEventPublisher(Protocol):
    """Abstract publisher used by core modules."""

    def publish(self, event: DomainEvent) -> None: ...


class NullPublisher:
    """Publisher that drops everything. Default when nobody subscribes."""

    def publish(self, event: DomainEvent) -> None:
        return None
