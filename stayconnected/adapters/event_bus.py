"""In-process domain event bus — implements DomainEventPublisher.

Subscribers register per event kind (or "*" for everything). A subscriber
that raises is logged and skipped; the publisher never sees the error.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable

from stayconnected.ports.event_port import DomainEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[DomainEvent], None]

ALL_KINDS = "*"


class InProcessEventBus:
    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)

    def subscribe(self, kind: str, callback: Subscriber) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        self._subscribers[kind].append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers[kind]:
                self._subscribers[kind].remove(callback)

        return unsubscribe

    def publish(self, event: DomainEvent) -> None:
        for callback in [*self._subscribers[event.kind], *self._subscribers[ALL_KINDS]]:
            try:
                callback(event)
            except Exception as exc:
                logger.error("Subscriber for '%s' failed: %s", event.kind, exc)
