"""Shared test fixtures and configuration.

Sets up fake environment variables so stayconnected.config doesn't
sys.exit(), and provides temp-file stores and recording senders.
"""

import os

# Patch env vars BEFORE any stayconnected imports
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ["SENDGRID_API_KEY"] = ""
os.environ["TELNYX_API_KEY"] = ""
os.environ["EXPO_ACCESS_TOKEN"] = ""
os.environ["CRON_SECRET"] = ""

import pytest
from datetime import datetime, timedelta, timezone


class RecordingSender:
    """NotificationSender that records calls, optionally failing for some recipients."""

    def __init__(self, fail_for=(), error="Provider API error: 500"):
        self.sent = []
        self._fail_for = set(fail_for)
        self._error = error

    async def send(self, recipient, subject, content):
        if recipient in self._fail_for:
            from stayconnected.ports.notification_port import SenderError
            raise SenderError(self._error)
        self.sent.append((recipient, subject, content))


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_stayconnected.db")


@pytest.fixture
def user_db(tmp_db_path):
    from stayconnected.data.db import UserDB
    return UserDB(db_path=tmp_db_path)


@pytest.fixture
def event_db(tmp_db_path):
    from stayconnected.data.db import EventDB
    return EventDB(db_path=tmp_db_path)


@pytest.fixture
def contact_db(tmp_db_path):
    from stayconnected.data.db import ContactDB
    return ContactDB(db_path=tmp_db_path)


@pytest.fixture
def log_db(tmp_db_path):
    from stayconnected.data.db import NotificationLogDB
    return NotificationLogDB(db_path=tmp_db_path)


@pytest.fixture
def activity_db(tmp_db_path):
    from stayconnected.data.db import ActivityLogDB
    return ActivityLogDB(db_path=tmp_db_path)


@pytest.fixture
def owner(user_db):
    """A registered event owner reachable by email only."""
    return user_db.add_user("Alice", email="alice@example.com", user_id="user-1")


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def hours_ago(now):
    """hours_ago(n) → datetime n hours before `now`."""
    return lambda hours: now - timedelta(hours=hours)


@pytest.fixture
def senders():
    from stayconnected.data.models import Channel
    return {
        Channel.EMAIL: RecordingSender(),
        Channel.SMS: RecordingSender(),
        Channel.PUSH: RecordingSender(),
    }
