"""Notification storage module.

Provides SQLite-backed storage for pipeline notifications:
- Atomic commit of new notifications together with the run watermark
- Deterministic ids make re-inserting the same notification a no-op
- Status updates (read, dismissed, acted) and deletion for the UI
- Audit trail
"""

from .models import (
    EPOCH,
    AuditAction,
    ClusterMember,
    Notification,
    NotificationAuditEntry,
    NotificationCategory,
    NotificationStatus,
    RunWatermark,
    format_datetime,
    parse_datetime,
)
from .store import CommitResult, NotificationStore, WatermarkConflictError

__all__ = [
    "EPOCH",
    "AuditAction",
    "ClusterMember",
    "Notification",
    "NotificationAuditEntry",
    "NotificationCategory",
    "NotificationStatus",
    "RunWatermark",
    "format_datetime",
    "parse_datetime",
    "CommitResult",
    "NotificationStore",
    "WatermarkConflictError",
]
