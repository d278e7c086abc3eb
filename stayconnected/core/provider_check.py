"""
StayConnected — Test notifications.

Sends a one-off test message to a contact through the owner's own
provider keys, so the owner can confirm their SendGrid / Telnyx setup
before relying on it. Nothing is written to the notification log.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from stayconnected.core.errors import AuthorizationError, NotFoundError, ValidationError
from stayconnected.data.models import PREFERENCE_CHANNELS, Channel, UserApiKeys

if TYPE_CHECKING:
    from stayconnected.data.db import ContactDB, UserDB
    from stayconnected.ports.notification_port import NotificationSender

logger = logging.getLogger(__name__)

TEST_SUBJECT = "Test Notification"
TEST_CONTENT = "This is a test notification from your Check-In Alert System."

_MISSING_RECIPIENT = {
    Channel.EMAIL: "Contact has no email address",
    Channel.SMS: "Contact has no phone number",
}
_MISSING_KEY = {
    Channel.EMAIL: "SendGrid API key not configured",
    Channel.SMS: "Telnyx API key not configured",
}

SenderFactory = Callable[..., "dict[Channel, NotificationSender]"]


async def send_test_notification(
    contact_id: str,
    notification_type: str,
    caller_id: str,
    contact_db: ContactDB,
    user_db: UserDB,
    sender_factory: SenderFactory | None = None,
) -> dict[str, dict]:
    """Send a test message on the requested channel(s).

    Returns per-channel results: {"email": {"sent", "error"}, "sms": {...}}.
    A channel that was not requested stays {"sent": False, "error": None}.
    """
    if not contact_id:
        raise ValidationError("Contact ID is required")
    if notification_type not in PREFERENCE_CHANNELS:
        raise ValidationError("Valid notification type is required (email, sms, or both)")

    contact = contact_db.get_contact(contact_id)
    if contact is None or contact.deleted:
        raise NotFoundError(f"Contact not found: {contact_id}")
    if contact.user_id != caller_id:
        raise AuthorizationError("Contact does not belong to the caller")

    if sender_factory is None:
        from stayconnected.adapters.sender_factory import create_senders as sender_factory

    api_keys = user_db.get_api_keys(contact.user_id) or UserApiKeys(user_id=contact.user_id)
    senders = sender_factory(api_keys=api_keys)

    recipients = {Channel.EMAIL: contact.email, Channel.SMS: contact.phone}
    results: dict[str, dict] = {
        channel.value: {"sent": False, "error": None} for channel in (Channel.EMAIL, Channel.SMS)
    }

    for channel in PREFERENCE_CHANNELS[notification_type]:
        result = results[channel.value]
        recipient = recipients[channel]
        sender = senders.get(channel)
        if not recipient:
            result["error"] = _MISSING_RECIPIENT[channel]
            continue
        if sender is None:
            result["error"] = _MISSING_KEY[channel]
            continue
        try:
            await sender.send(recipient, TEST_SUBJECT, TEST_CONTENT)
            result["sent"] = True
        except Exception as exc:
            logger.warning("Test %s to contact %s failed: %s", channel.value, contact.id, exc)
            result["error"] = str(exc)

    logger.info("Test notification for contact %s (%s): %s", contact.id, notification_type, results)
    return results
