"""
StayConnected — Datastore.

SQLite-backed stores for users, events, contacts and the two audit logs.
All tables live in one database file; every store creates the full schema
on first use so stores can be constructed in any order.

sqlite3 errors are re-raised as DatastoreError so callers can isolate a
failed write to the entity it concerned.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from stayconnected.core.errors import DatastoreError
from stayconnected.core.timeutil import now_utc, to_iso
from stayconnected.data.models import (
    ActivityAction,
    ActivityDetails,
    ActivityLog,
    Channel,
    Contact,
    Event,
    EventStatus,
    NotificationCategory,
    NotificationLog,
    NotificationStatus,
    User,
    UserApiKeys,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id            TEXT PRIMARY KEY,
    display_name  TEXT NOT NULL,
    email         TEXT,
    phone         TEXT,
    created_at    TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS user_api_keys (
    user_id           TEXT PRIMARY KEY,
    sendgrid_api_key  TEXT NOT NULL DEFAULT '',
    telnyx_api_key    TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS user_push_tokens (
    user_id     TEXT NOT NULL,
    push_token  TEXT NOT NULL,
    platform    TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (user_id, push_token)
);
CREATE TABLE IF NOT EXISTS events (
    id                        TEXT PRIMARY KEY,
    user_id                   TEXT    NOT NULL,
    name                      TEXT    NOT NULL,
    memo                      TEXT,
    check_in_frequency        TEXT    NOT NULL,
    missed_checkin_threshold  INTEGER NOT NULL DEFAULT 1,
    last_check_in             TEXT    NOT NULL,
    status                    TEXT    NOT NULL DEFAULT 'running',
    last_trigger_time         TEXT,
    deleted                   INTEGER NOT NULL DEFAULT 0,
    created_at                TEXT    NOT NULL,
    updated_at                TEXT    NOT NULL
);
CREATE TABLE IF NOT EXISTS contacts (
    id                       TEXT PRIMARY KEY,
    user_id                  TEXT NOT NULL,
    name                     TEXT NOT NULL,
    email                    TEXT,
    phone                    TEXT,
    notification_preference  TEXT NOT NULL DEFAULT 'both',
    social_media             TEXT NOT NULL DEFAULT '{}',
    deleted                  INTEGER NOT NULL DEFAULT 0,
    created_at               TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS event_contacts (
    event_id    TEXT NOT NULL,
    contact_id  TEXT NOT NULL,
    PRIMARY KEY (event_id, contact_id)
);
CREATE TABLE IF NOT EXISTS notification_logs (
    id                     TEXT PRIMARY KEY,
    event_id               TEXT NOT NULL,
    notification_type      TEXT NOT NULL,
    recipient              TEXT NOT NULL,
    content                TEXT NOT NULL,
    notification_category  TEXT NOT NULL,
    status                 TEXT NOT NULL DEFAULT 'pending',
    error_message          TEXT,
    sent_at                TEXT,
    created_at             TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS activity_logs (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    event_id    TEXT,
    action      TEXT NOT NULL,
    details     TEXT NOT NULL DEFAULT '{}',
    created_at  TEXT NOT NULL
);
"""

# Columns added after the first release: name → DDL fragment
_EVENT_MIGRATIONS = {
    "muted": "INTEGER NOT NULL DEFAULT 0",
    "notification_content": "TEXT",
}


def _new_id() -> str:
    return str(uuid.uuid4())


class _SQLiteStore:
    """Connection handling and schema bootstrap shared by every store."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from stayconnected.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @property
    def db_path(self) -> str:
        return self._db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise DatastoreError(str(exc)) from exc
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Create all tables if they don't exist, and migrate schema."""
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
            # Migrate existing DBs: add new columns if missing
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(events)").fetchall()
            }
            for column, ddl in _EVENT_MIGRATIONS.items():
                if column not in existing_cols:
                    conn.execute(f"ALTER TABLE events ADD COLUMN {column} {ddl}")
        logger.debug("%s initialized at %s", type(self).__name__, self._db_path)


class UserDB(_SQLiteStore):
    """Users, their push tokens and their own provider keys."""

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            display_name=row["display_name"],
            email=row["email"],
            phone=row["phone"],
            created_at=row["created_at"],
        )

    def add_user(
        self,
        display_name: str,
        email: str | None = None,
        phone: str | None = None,
        user_id: str | None = None,
    ) -> User:
        """Register a user. The id normally comes from the auth provider."""
        user_id = user_id or _new_id()
        now = to_iso(now_utc())
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO users (id, display_name, email, phone, created_at)"
                " VALUES (?, ?, ?, ?, ?)",
                (user_id, display_name, email, phone, now),
            )
        logger.info("User registered: %s '%s'", user_id, display_name)
        return User(
            id=user_id, display_name=display_name,
            email=email, phone=phone, created_at=now,
        )

    def get_user(self, user_id: str) -> User | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def set_api_keys(
        self, user_id: str, sendgrid_api_key: str = "", telnyx_api_key: str = "",
    ) -> UserApiKeys:
        """Store (or replace) the user's own provider keys."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO user_api_keys (user_id, sendgrid_api_key, telnyx_api_key)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    sendgrid_api_key = excluded.sendgrid_api_key,
                    telnyx_api_key   = excluded.telnyx_api_key
                """,
                (user_id, sendgrid_api_key, telnyx_api_key),
            )
        logger.info("Provider keys updated for user %s", user_id)
        return UserApiKeys(
            user_id=user_id,
            sendgrid_api_key=sendgrid_api_key,
            telnyx_api_key=telnyx_api_key,
        )

    def get_api_keys(self, user_id: str) -> UserApiKeys | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM user_api_keys WHERE user_id = ?", (user_id,),
            ).fetchone()
        if row is None:
            return None
        return UserApiKeys(
            user_id=row["user_id"],
            sendgrid_api_key=row["sendgrid_api_key"],
            telnyx_api_key=row["telnyx_api_key"],
        )

    def add_push_token(self, user_id: str, push_token: str, platform: str = "") -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO user_push_tokens (user_id, push_token, platform)"
                " VALUES (?, ?, ?)",
                (user_id, push_token, platform),
            )

    def list_push_tokens(self, user_id: str) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT push_token FROM user_push_tokens WHERE user_id = ? ORDER BY push_token",
                (user_id,),
            ).fetchall()
        return [r["push_token"] for r in rows]


class EventDB(_SQLiteStore):
    """Check-in events and their contact associations."""

    # Columns a user edit may touch. Status and timestamps move only through
    # the dedicated transition methods below.
    _EDITABLE = frozenset({
        "name", "memo", "check_in_frequency", "missed_checkin_threshold",
        "muted", "notification_content",
    })

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        return Event(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            memo=row["memo"],
            check_in_frequency=row["check_in_frequency"],
            missed_checkin_threshold=row["missed_checkin_threshold"],
            last_check_in=row["last_check_in"],
            status=EventStatus(row["status"]),
            last_trigger_time=row["last_trigger_time"],
            muted=bool(row["muted"]),
            notification_content=row["notification_content"],
            deleted=bool(row["deleted"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def add_event(
        self,
        user_id: str,
        name: str,
        check_in_frequency: str,
        missed_checkin_threshold: int = 1,
        memo: str | None = None,
        notification_content: str | None = None,
        muted: bool = False,
        now: datetime | None = None,
    ) -> Event:
        """Insert a running event whose timer starts now."""
        event_id = _new_id()
        stamp = to_iso(now or now_utc())
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO events
                    (id, user_id, name, memo, check_in_frequency,
                     missed_checkin_threshold, last_check_in, status,
                     muted, notification_content, deleted, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, 'running', ?, ?, 0, ?, ?)
                """,
                (
                    event_id, user_id, name, memo, check_in_frequency,
                    missed_checkin_threshold, stamp, int(muted),
                    notification_content, stamp, stamp,
                ),
            )
        logger.info("Event added: %s '%s' every %s", event_id, name, check_in_frequency)
        return Event(
            id=event_id,
            user_id=user_id,
            name=name,
            memo=memo,
            check_in_frequency=check_in_frequency,
            missed_checkin_threshold=missed_checkin_threshold,
            last_check_in=stamp,
            status=EventStatus.RUNNING,
            muted=muted,
            notification_content=notification_content,
            created_at=stamp,
            updated_at=stamp,
        )

    def get_event(self, event_id: str) -> Event | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_event(row)

    def list_monitored(self) -> list[Event]:
        """Running, non-deleted, non-muted events: the inactivity-check scope."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM events"
                " WHERE status = 'running' AND deleted = 0 AND muted = 0"
                " ORDER BY last_check_in",
            ).fetchall()
        return [self._row_to_event(r) for r in rows]

    def list_for_user(
        self,
        user_id: str,
        event_ids: list[str] | None = None,
        status: EventStatus | None = None,
        include_muted: bool = True,
    ) -> list[Event]:
        """Non-deleted events owned by a user, optionally filtered."""
        conditions = ["user_id = ?", "deleted = 0"]
        params: list = [user_id]
        if event_ids:
            conditions.append(f"id IN ({', '.join('?' for _ in event_ids)})")
            params.extend(event_ids)
        if status is not None:
            conditions.append("status = ?")
            params.append(status.value)
        if not include_muted:
            conditions.append("muted = 0")

        query = "SELECT * FROM events WHERE " + " AND ".join(conditions) + " ORDER BY created_at"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_event(r) for r in rows]

    def update_event(self, event_id: str, changes: dict, now: datetime | None = None) -> Event | None:
        """Apply a user edit. Unknown columns raise ValueError."""
        unknown = set(changes) - self._EDITABLE
        if unknown:
            raise ValueError(f"Columns not editable: {sorted(unknown)}")

        if changes:
            values = {k: (int(v) if k == "muted" else v) for k, v in changes.items()}
            assignments = ", ".join(f"{col} = ?" for col in values)
            params = [*values.values(), to_iso(now or now_utc()), event_id]
            with self._connect() as conn:
                conn.execute(
                    f"UPDATE events SET {assignments}, updated_at = ?"
                    " WHERE id = ? AND deleted = 0",
                    params,
                )
            logger.info("Event %s updated: %s", event_id, sorted(values))
        return self.get_event(event_id)

    def mark_triggered(self, event_id: str, now: datetime) -> bool:
        """running → triggered, guarded so only one caller can win the row.

        Returns False when the event is no longer running, muted or deleted.
        """
        stamp = to_iso(now)
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE events
                SET status = 'triggered', last_trigger_time = ?, updated_at = ?
                WHERE id = ? AND status = 'running' AND deleted = 0 AND muted = 0
                """,
                (stamp, stamp, event_id),
            )
        return cursor.rowcount > 0

    def set_status(
        self,
        event_id: str,
        new_status: EventStatus,
        allowed_from: frozenset[EventStatus],
        now: datetime,
    ) -> bool:
        """Conditional status change; False if the current status is not allowed."""
        placeholders = ", ".join("?" for _ in allowed_from)
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE events SET status = ?, updated_at = ?"
                f" WHERE id = ? AND deleted = 0 AND status IN ({placeholders})",
                (new_status.value, to_iso(now), event_id, *(s.value for s in allowed_from)),
            )
        return cursor.rowcount > 0

    def record_check_in(self, event_id: str, now: datetime) -> bool:
        """Reset the timer and return the event to running.

        last_check_in only moves forward: an older timestamp leaves it as is.
        """
        stamp = to_iso(now)
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE events
                SET last_check_in = CASE WHEN last_check_in > ? THEN last_check_in ELSE ? END,
                    status = 'running',
                    updated_at = ?
                WHERE id = ? AND deleted = 0
                """,
                (stamp, stamp, stamp, event_id),
            )
        return cursor.rowcount > 0

    def soft_delete(self, event_id: str, now: datetime | None = None) -> bool:
        """Mark deleted. Contact associations are kept for audit."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE events SET deleted = 1, status = 'deleted', updated_at = ?"
                " WHERE id = ? AND deleted = 0",
                (to_iso(now or now_utc()), event_id),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Event %s soft-deleted", event_id)
        return deleted

    def set_contacts(self, event_id: str, contact_ids: list[str]) -> None:
        """Replace the event's contact associations."""
        with self._connect() as conn:
            conn.execute("DELETE FROM event_contacts WHERE event_id = ?", (event_id,))
            conn.executemany(
                "INSERT OR IGNORE INTO event_contacts (event_id, contact_id) VALUES (?, ?)",
                [(event_id, cid) for cid in contact_ids],
            )

    def get_contacts(self, event_id: str) -> list[Contact]:
        """Associated contacts, excluding soft-deleted ones."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT c.* FROM contacts c
                JOIN event_contacts ec ON ec.contact_id = c.id
                WHERE ec.event_id = ? AND c.deleted = 0
                ORDER BY c.name
                """,
                (event_id,),
            ).fetchall()
        return [ContactDB._row_to_contact(r) for r in rows]


class ContactDB(_SQLiteStore):
    """Emergency contacts. Deletion is soft."""

    @staticmethod
    def _row_to_contact(row: sqlite3.Row) -> Contact:
        return Contact(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            notification_preference=row["notification_preference"],
            social_media=json.loads(row["social_media"] or "{}"),
            deleted=bool(row["deleted"]),
            created_at=row["created_at"],
        )

    def add_contact(
        self,
        user_id: str,
        name: str,
        email: str | None = None,
        phone: str | None = None,
        notification_preference: str = "both",
        social_media: dict[str, str] | None = None,
    ) -> Contact:
        """Insert a contact. Strips whitespace; empty strings become None."""
        email = (email or "").strip() or None
        phone = (phone or "").strip() or None
        contact_id = _new_id()
        now = to_iso(now_utc())
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO contacts
                    (id, user_id, name, email, phone, notification_preference,
                     social_media, deleted, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?)
                """,
                (
                    contact_id, user_id, name.strip(), email, phone,
                    notification_preference, json.dumps(social_media or {}), now,
                ),
            )
        logger.info("Contact added: %s '%s'", contact_id, name.strip())
        return Contact(
            id=contact_id,
            user_id=user_id,
            name=name.strip(),
            email=email,
            phone=phone,
            notification_preference=notification_preference,
            social_media=dict(social_media or {}),
            created_at=now,
        )

    def get_contact(self, contact_id: str) -> Contact | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM contacts WHERE id = ?", (contact_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_contact(row)

    def list_all(self, user_id: str, include_deleted: bool = False) -> list[Contact]:
        query = "SELECT * FROM contacts WHERE user_id = ?"
        if not include_deleted:
            query += " AND deleted = 0"
        query += " ORDER BY name"
        with self._connect() as conn:
            rows = conn.execute(query, (user_id,)).fetchall()
        return [self._row_to_contact(r) for r in rows]

    def delete_contact(self, contact_id: str) -> bool:
        """Soft-delete a contact. Event associations stay in place."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE contacts SET deleted = 1 WHERE id = ? AND deleted = 0",
                (contact_id,),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Contact %s soft-deleted", contact_id)
        return deleted


class NotificationLogDB(_SQLiteStore):
    """One row per attempted delivery. Rows are never deleted.

    sent and failed are final; a cancelled row can still record the outcome
    of the attempt that was in flight when it was cancelled.
    """

    @staticmethod
    def _row_to_log(row: sqlite3.Row) -> NotificationLog:
        return NotificationLog(
            id=row["id"],
            event_id=row["event_id"],
            channel=Channel(row["notification_type"]),
            recipient=row["recipient"],
            content=row["content"],
            category=NotificationCategory(row["notification_category"]),
            status=NotificationStatus(row["status"]),
            error_message=row["error_message"],
            sent_at=row["sent_at"],
            created_at=row["created_at"],
        )

    def create(
        self,
        event_id: str,
        channel: Channel,
        recipient: str,
        content: str,
        category: NotificationCategory,
    ) -> NotificationLog:
        """Insert a pending attempt."""
        log_id = _new_id()
        now = to_iso(now_utc())
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO notification_logs
                    (id, event_id, notification_type, recipient, content,
                     notification_category, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, 'pending', ?)
                """,
                (log_id, event_id, channel.value, recipient, content, category.value, now),
            )
        return NotificationLog(
            id=log_id,
            event_id=event_id,
            channel=channel,
            recipient=recipient,
            content=content,
            category=category,
            created_at=now,
        )

    def _finish(self, log_id: str, status: NotificationStatus, error: str | None, at: datetime) -> bool:
        # A check-in may cancel an attempt already in flight; its real outcome still wins.
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE notification_logs SET status = ?, error_message = ?, sent_at = ?"
                " WHERE id = ? AND status IN ('pending', 'cancelled')",
                (status.value, error, to_iso(at), log_id),
            )
        if cursor.rowcount == 0:
            logger.warning("Notification log %s already finished, not marking %s", log_id, status.value)
            return False
        return True

    def mark_sent(self, log_id: str, at: datetime | None = None) -> bool:
        return self._finish(log_id, NotificationStatus.SENT, None, at or now_utc())

    def mark_failed(self, log_id: str, error: str, at: datetime | None = None) -> bool:
        return self._finish(log_id, NotificationStatus.FAILED, error, at or now_utc())

    def cancel_pending(self, event_id: str) -> int:
        """Cancel attempts still pending for an event. Returns rows changed."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE notification_logs SET status = 'cancelled'"
                " WHERE event_id = ? AND status = 'pending'",
                (event_id,),
            )
        return cursor.rowcount

    def get(self, log_id: str) -> NotificationLog | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM notification_logs WHERE id = ?", (log_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_log(row)

    def list_for_event(
        self, event_id: str, category: NotificationCategory | None = None,
    ) -> list[NotificationLog]:
        query = "SELECT * FROM notification_logs WHERE event_id = ?"
        params: list = [event_id]
        if category is not None:
            query += " AND notification_category = ?"
            params.append(category.value)
        query += " ORDER BY created_at, recipient"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_log(r) for r in rows]

    def has_reminder_since(self, event_id: str, number: int, since: str) -> bool:
        """True if reminder #number was already logged after the given timestamp."""
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM notification_logs
                WHERE event_id = ? AND notification_category = 'user_reminder'
                  AND content LIKE ? AND created_at > ?
                LIMIT 1
                """,
                (event_id, f"Reminder #{number}:%", since),
            ).fetchone()
        return row is not None


class ActivityLogDB(_SQLiteStore):
    """Append-only audit trail."""

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> ActivityLog:
        return ActivityLog(
            id=row["id"],
            user_id=row["user_id"],
            event_id=row["event_id"],
            action=ActivityAction(row["action"]),
            details=ActivityDetails.model_validate_json(row["details"]),
            created_at=row["created_at"],
        )

    def append(
        self,
        user_id: str,
        action: ActivityAction,
        event_id: str | None = None,
        details: ActivityDetails | None = None,
    ) -> ActivityLog:
        details = details or ActivityDetails()
        entry_id = _new_id()
        now = to_iso(now_utc())
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO activity_logs (id, user_id, event_id, action, details, created_at)"
                " VALUES (?, ?, ?, ?, ?, ?)",
                (
                    entry_id, user_id, event_id, action.value,
                    details.model_dump_json(exclude_none=True), now,
                ),
            )
        return ActivityLog(
            id=entry_id, user_id=user_id, event_id=event_id,
            action=action, details=details, created_at=now,
        )

    def list_for_user(self, user_id: str, limit: int = 100) -> list[ActivityLog]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM activity_logs WHERE user_id = ?"
                " ORDER BY created_at DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [self._row_to_entry(r) for r in rows]

    def list_for_event(self, event_id: str) -> list[ActivityLog]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM activity_logs WHERE event_id = ? ORDER BY created_at",
                (event_id,),
            ).fetchall()
        return [self._row_to_entry(r) for r in rows]
