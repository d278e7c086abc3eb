"""Notification port — abstract interface for delivering a message on one channel.

Core modules depend on this protocol, never on a specific email, SMS or
push provider.
"""

from __future__ import annotations

from typing import Protocol


class SenderError(Exception):
    """Raised when a provider rejects or fails to deliver a message."""


class NotificationSender(Protocol):
    """Abstract per-channel sender used by the notification dispatcher."""

    async def send(self, recipient: str, subject: str, content: str) -> None: ...
