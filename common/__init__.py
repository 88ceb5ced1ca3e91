"""Shared storage for the Detection & Notification Pipeline."""

from .notification_store import (
    CommitResult,
    Notification,
    NotificationCategory,
    NotificationStatus,
    NotificationStore,
    RunWatermark,
    WatermarkConflictError,
)

__all__ = [
    "CommitResult",
    "Notification",
    "NotificationCategory",
    "NotificationStatus",
    "NotificationStore",
    "RunWatermark",
    "WatermarkConflictError",
]
