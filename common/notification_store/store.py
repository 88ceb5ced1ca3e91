"""SQLite-backed notification storage and pipeline commit sink."""

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from .models import (
    AuditAction,
    Notification,
    NotificationAuditEntry,
    NotificationCategory,
    NotificationStatus,
    RunWatermark,
    format_datetime,
    parse_datetime,
)

logger = logging.getLogger(__name__)

NOTIFICATION_COLUMNS = """
    facility_id, id, rule_id, category, status,
    resident_id, unit, room, message, refs, cluster_details, action,
    payload, created_at, read_at, acted_at, line_list_event_id
"""


class WatermarkConflictError(Exception):
    """Another run committed between our watermark read and our commit."""

    def __init__(self, facility_id: str, expected_version: int, actual_version: int):
        self.facility_id = facility_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Watermark for facility {facility_id} moved from version "
            f"{expected_version} to {actual_version} during the run"
        )


@dataclass
class CommitResult:
    """Outcome of an atomic pipeline commit."""
    watermark: RunWatermark
    inserted_ids: list[str] = field(default_factory=list)


class NotificationStore:
    """SQLite-backed storage for notifications and run watermarks."""

    def __init__(self, db_path: str | None = None):
        """Initialize notification store.

        Args:
            db_path: Path to SQLite database. Defaults to NOTIFICATION_DB_PATH
                     env var or ~/.ltc-alerts/notifications.db
        """
        if db_path:
            self.db_path = os.path.expanduser(db_path)
        else:
            self.db_path = os.path.expanduser(
                os.environ.get("NOTIFICATION_DB_PATH", "~/.ltc-alerts/notifications.db")
            )

        db_dir = os.path.dirname(self.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        schema_path = Path(__file__).parent / "schema.sql"
        schema = schema_path.read_text()

        with self._connection() as conn:
            conn.executescript(schema)

    def _connect(self) -> sqlite3.Connection:
        """Get database connection with row factory."""
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Connection that commits on success and is always closed."""
        conn = self._connect()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    @contextmanager
    def _immediate_transaction(self) -> Iterator[sqlite3.Connection]:
        """Transaction holding the write lock from its first statement.

        Concurrent commits against the same database serialize here.
        """
        conn = self._connect()
        conn.isolation_level = None
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @staticmethod
    def _read_watermark(conn: sqlite3.Connection, facility_id: str) -> RunWatermark:
        row = conn.execute(
            """
            SELECT last_run_at, last_seen_event_at, version
            FROM notification_meta WHERE facility_id = ?
            """,
            (facility_id,)
        ).fetchone()
        if row is None:
            return RunWatermark()
        return RunWatermark(
            last_run_at=parse_datetime(row[0]),
            last_seen_event_at=parse_datetime(row[1]),
            version=row[2],
        )

    @staticmethod
    def _audit(
        conn: sqlite3.Connection,
        facility_id: str,
        notification_id: str,
        action: AuditAction,
        performed_by: str | None = None,
        details: str | None = None,
    ) -> None:
        conn.execute(
            """
            INSERT INTO notification_audit
                (facility_id, notification_id, action, performed_by, performed_at, details)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                facility_id, notification_id, action.value, performed_by,
                format_datetime(datetime.now(timezone.utc)), details,
            )
        )

    # Pipeline-facing operations

    def get_watermark(self, facility_id: str) -> RunWatermark:
        """Get the run watermark for a facility (epoch sentinel if never run)."""
        with self._connection() as conn:
            return self._read_watermark(conn, facility_id)

    def get_notification_ids(self, facility_id: str) -> set[str]:
        """All stored notification ids for a facility, regardless of status."""
        with self._connection() as conn:
            cursor = conn.execute(
                "SELECT id FROM notifications WHERE facility_id = ?",
                (facility_id,)
            )
            return {row[0] for row in cursor.fetchall()}

    def commit_run(
        self,
        facility_id: str,
        notifications: list[Notification],
        watermark: RunWatermark,
        expected_version: int | None = None,
    ) -> CommitResult:
        """Insert new notifications and advance the watermark atomically.

        Either every notification is inserted and the watermark advanced, or
        nothing changes. An empty notification list still advances the
        watermark.

        Args:
            facility_id: Facility the run belongs to
            notifications: New notifications produced by the run
            watermark: Watermark computed by the run
            expected_version: Watermark version the run started from. If the
                stored version differs, the commit is rejected.

        Returns:
            CommitResult with the stored watermark and the inserted ids

        Raises:
            WatermarkConflictError: If another run committed in the meantime
            sqlite3.Error: On storage failure (nothing is written)
        """
        with self._immediate_transaction() as conn:
            current = self._read_watermark(conn, facility_id)
            if expected_version is not None and current.version != expected_version:
                raise WatermarkConflictError(facility_id, expected_version, current.version)

            inserted_ids = []
            for notification in notifications:
                cursor = conn.execute(
                    f"""
                    INSERT OR IGNORE INTO notifications ({NOTIFICATION_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    notification.to_row()
                )
                if cursor.rowcount > 0:
                    inserted_ids.append(notification.id)
                    self._audit(
                        conn, facility_id, notification.id, AuditAction.CREATED,
                        details=notification.rule_id,
                    )

            stored = RunWatermark(
                last_run_at=max(current.last_run_at, watermark.last_run_at),
                last_seen_event_at=max(current.last_seen_event_at, watermark.last_seen_event_at),
                version=current.version + 1,
            )
            conn.execute(
                """
                INSERT INTO notification_meta
                    (facility_id, last_run_at, last_seen_event_at, version)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(facility_id) DO UPDATE SET
                    last_run_at = excluded.last_run_at,
                    last_seen_event_at = excluded.last_seen_event_at,
                    version = excluded.version
                """,
                (
                    facility_id,
                    format_datetime(stored.last_run_at, timespec="microseconds"),
                    format_datetime(stored.last_seen_event_at, timespec="microseconds"),
                    stored.version,
                )
            )

        if inserted_ids:
            logger.info(f"Committed {len(inserted_ids)} notification(s) for facility {facility_id}")
        logger.debug(
            f"Watermark for {facility_id} now v{stored.version} "
            f"(last seen {format_datetime(stored.last_seen_event_at)})"
        )
        return CommitResult(watermark=stored, inserted_ids=inserted_ids)

    # UI-facing operations

    def get_notification(self, facility_id: str, notification_id: str) -> Notification | None:
        """Get a notification by ID."""
        with self._connection() as conn:
            row = conn.execute(
                f"""
                SELECT {NOTIFICATION_COLUMNS}
                FROM notifications WHERE facility_id = ? AND id = ?
                """,
                (facility_id, notification_id)
            ).fetchone()

            if row:
                return Notification.from_row(tuple(row))
            return None

    def list_notifications(
        self,
        facility_id: str,
        status: NotificationStatus | list[NotificationStatus] | None = None,
        category: NotificationCategory | None = None,
        rule_id: str | None = None,
        limit: int | None = None,
    ) -> list[Notification]:
        """List notifications with optional filters, newest first."""
        query = f"SELECT {NOTIFICATION_COLUMNS} FROM notifications WHERE facility_id = ?"
        params: list = [facility_id]

        if status is not None:
            statuses = status if isinstance(status, list) else [status]
            placeholders = ",".join("?" * len(statuses))
            query += f" AND status IN ({placeholders})"
            params.extend(s.value for s in statuses)

        if category is not None:
            query += " AND category = ?"
            params.append(category.value)

        if rule_id is not None:
            query += " AND rule_id = ?"
            params.append(rule_id)

        query += " ORDER BY created_at DESC, id"

        if limit:
            query += " LIMIT ?"
            params.append(limit)

        with self._connection() as conn:
            cursor = conn.execute(query, params)
            return [Notification.from_row(tuple(row)) for row in cursor.fetchall()]

    def _update_status(
        self,
        facility_id: str,
        notification_id: str,
        status: NotificationStatus,
        action: AuditAction,
        performed_by: str | None = None,
    ) -> bool:
        now = format_datetime(datetime.now(timezone.utc))
        with self._connection() as conn:
            cursor = conn.execute(
                """
                UPDATE notifications
                SET status = ?, read_at = COALESCE(read_at, ?)
                WHERE facility_id = ? AND id = ?
                """,
                (status.value, now, facility_id, notification_id)
            )
            if cursor.rowcount == 0:
                return False
            self._audit(conn, facility_id, notification_id, action, performed_by)

        logger.info(f"Notification {notification_id} marked {status.value}")
        return True

    def mark_read(
        self,
        facility_id: str,
        notification_id: str,
        performed_by: str | None = None,
    ) -> bool:
        """Mark a notification as read."""
        return self._update_status(
            facility_id, notification_id,
            NotificationStatus.READ, AuditAction.READ, performed_by,
        )

    def dismiss(
        self,
        facility_id: str,
        notification_id: str,
        performed_by: str | None = None,
    ) -> bool:
        """Dismiss a notification without deleting it."""
        return self._update_status(
            facility_id, notification_id,
            NotificationStatus.DISMISSED, AuditAction.DISMISSED, performed_by,
        )

    def mark_all_read(self, facility_id: str, performed_by: str | None = None) -> int:
        """Mark every unread notification of a facility as read.

        Returns:
            Number of notifications updated
        """
        now = format_datetime(datetime.now(timezone.utc))
        with self._connection() as conn:
            ids = [
                row[0] for row in conn.execute(
                    "SELECT id FROM notifications WHERE facility_id = ? AND status = ?",
                    (facility_id, NotificationStatus.UNREAD.value)
                ).fetchall()
            ]
            conn.execute(
                """
                UPDATE notifications SET status = ?, read_at = ?
                WHERE facility_id = ? AND status = ?
                """,
                (NotificationStatus.READ.value, now, facility_id, NotificationStatus.UNREAD.value)
            )
            for notification_id in ids:
                self._audit(conn, facility_id, notification_id, AuditAction.READ, performed_by)

        return len(ids)

    def mark_acted(
        self,
        facility_id: str,
        notification_id: str,
        line_list_event_id: str | None = None,
        performed_by: str | None = None,
    ) -> bool:
        """Record that the recommended action was completed."""
        now = format_datetime(datetime.now(timezone.utc))
        with self._connection() as conn:
            cursor = conn.execute(
                """
                UPDATE notifications
                SET acted_at = ?, line_list_event_id = ?, status = ?,
                    read_at = COALESCE(read_at, ?)
                WHERE facility_id = ? AND id = ?
                """,
                (
                    now, line_list_event_id, NotificationStatus.READ.value, now,
                    facility_id, notification_id,
                )
            )
            if cursor.rowcount == 0:
                return False
            self._audit(
                conn, facility_id, notification_id, AuditAction.ACTED,
                performed_by, details=line_list_event_id,
            )
        return True

    def clear_notification(
        self,
        facility_id: str,
        notification_id: str,
        performed_by: str | None = None,
    ) -> bool:
        """Delete a notification.

        The id becomes free again, so a still-true condition is re-emitted by
        the next pipeline run on the same day.
        """
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM notifications WHERE facility_id = ? AND id = ?",
                (facility_id, notification_id)
            )
            if cursor.rowcount == 0:
                return False
            self._audit(conn, facility_id, notification_id, AuditAction.CLEARED, performed_by)

        logger.info(f"Notification {notification_id} cleared by {performed_by}")
        return True

    def get_audit_log(self, facility_id: str, notification_id: str) -> list[NotificationAuditEntry]:
        """Get audit log for a notification."""
        with self._connection() as conn:
            cursor = conn.execute(
                """
                SELECT id, facility_id, notification_id, action, performed_by, performed_at, details
                FROM notification_audit
                WHERE facility_id = ? AND notification_id = ?
                ORDER BY id
                """,
                (facility_id, notification_id)
            )
            return [NotificationAuditEntry.from_row(tuple(row)) for row in cursor.fetchall()]

    def get_stats(self, facility_id: str) -> dict:
        """Counts by status and by category for a facility."""
        with self._connection() as conn:
            by_status = {
                row[0]: row[1] for row in conn.execute(
                    """
                    SELECT status, COUNT(*) FROM notifications
                    WHERE facility_id = ? GROUP BY status
                    """,
                    (facility_id,)
                ).fetchall()
            }
            by_category = {
                row[0]: row[1] for row in conn.execute(
                    """
                    SELECT category, COUNT(*) FROM notifications
                    WHERE facility_id = ? AND status = ? GROUP BY category
                    """,
                    (facility_id, NotificationStatus.UNREAD.value)
                ).fetchall()
            }

        return {
            "total": sum(by_status.values()),
            "by_status": {s.value: by_status.get(s.value, 0) for s in NotificationStatus},
            "unread_by_category": by_category,
        }
