"""
StayConnected — Data Models.

Events, contacts and the audit records the system writes about them.
Events and contacts are mutated by users and by the inactivity monitor;
notification and activity logs are write-once records owned by the system.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict


class EventStatus(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    TRIGGERED = "triggered"
    DELETED = "deleted"


class Channel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class NotificationCategory(str, Enum):
    USER_REMINDER = "user_reminder"
    CONTACT_ALERT = "contact_alert"
    EVENT_TRIGGER = "event_trigger"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ActivityAction(str, Enum):
    CHECK_IN = "check_in"
    CREATE_EVENT = "create_event"
    UPDATE_EVENT = "update_event"
    DELETE_EVENT = "delete_event"
    PAUSE_EVENT = "pause_event"
    RESUME_EVENT = "resume_event"
    CREATE_CONTACT = "create_contact"
    DELETE_CONTACT = "delete_contact"
    MANUAL_NOTIFICATION = "manual_notification"
    SCHEDULED_CHECK = "scheduled_check"
    EVENT_TRIGGERED = "event_triggered"


# Contact preference → channels it enables
PREFERENCE_CHANNELS: dict[str, tuple[Channel, ...]] = {
    "email": (Channel.EMAIL,),
    "sms": (Channel.SMS,),
    "both": (Channel.EMAIL, Channel.SMS),
}

SOCIAL_MEDIA_KEYS = frozenset({"twitter", "facebook", "instagram", "linkedin"})

SYSTEM_USER_ID = "system"


class ActivityDetails(BaseModel):
    """Typed payload of an activity log entry.

    Known keys per action:
      check_in             timestamp, event_name
      create/update/delete/pause/resume_event   event_name
      create/delete_contact                     contact_name
      manual_notification  forced, notification_attempts,
                           notifications_sent, notifications_failed
      event_triggered      event_name, notifications_sent, notifications_failed
      scheduled_check      result
    """

    model_config = ConfigDict(extra="forbid")

    timestamp: str | None = None
    event_name: str | None = None
    contact_name: str | None = None
    forced: bool | None = None
    notification_attempts: int | None = None
    notifications_sent: int | None = None
    notifications_failed: int | None = None
    result: dict[str, int] | None = None


@dataclass
class User:
    """An account owning events and contacts. Authenticated upstream."""

    id: str
    display_name: str
    email: str | None = None
    phone: str | None = None
    created_at: str = ""


@dataclass
class UserApiKeys:
    """Per-user provider keys, used by the test-notification flow."""

    user_id: str
    sendgrid_api_key: str = ""
    telnyx_api_key: str = ""


@dataclass
class Event:
    """A recurring check-in obligation with a deadline policy."""

    id: str
    user_id: str
    name: str
    check_in_frequency: str           # e.g. "1 day"
    missed_checkin_threshold: int     # missed intervals tolerated before alerting
    last_check_in: str                # ISO timestamp (UTC)
    status: EventStatus = EventStatus.RUNNING
    memo: str | None = None
    last_trigger_time: str | None = None
    muted: bool = False
    notification_content: str | None = None
    deleted: bool = False
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Contact:
    """A person alerted when one of the owner's events is missed."""

    id: str
    user_id: str
    name: str
    email: str | None = None
    phone: str | None = None
    notification_preference: str = "both"    # "email" | "sms" | "both"
    social_media: dict[str, str] = field(default_factory=dict)
    deleted: bool = False
    created_at: str = ""

    def channels(self) -> list[tuple[Channel, str]]:
        """Enabled (channel, recipient) pairs with a non-empty recipient."""
        recipients = {Channel.EMAIL: self.email, Channel.SMS: self.phone}
        pairs = []
        for channel in PREFERENCE_CHANNELS.get(self.notification_preference, ()):
            recipient = (recipients[channel] or "").strip()
            if recipient:
                pairs.append((channel, recipient))
        return pairs


@dataclass
class NotificationLog:
    """One attempted delivery on one channel."""

    id: str
    event_id: str
    channel: Channel
    recipient: str
    content: str
    category: NotificationCategory
    status: NotificationStatus = NotificationStatus.PENDING
    error_message: str | None = None
    sent_at: str | None = None
    created_at: str = ""


@dataclass
class ActivityLog:
    """Append-only audit entry for a user or system action."""

    id: str
    user_id: str
    action: ActivityAction
    event_id: str | None = None
    details: ActivityDetails = field(default_factory=ActivityDetails)
    created_at: str = ""
