"""Data models for persistent notification storage."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import json


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class NotificationCategory(Enum):
    """Closed set of notification categories produced by the pipeline."""
    ADMISSION_SCREENING = "ADMISSION_SCREENING"
    VAX_GAP = "VAX_GAP"
    LINE_LIST_REVIEW = "LINE_LIST_REVIEW"
    SYMPTOM_WATCH = "SYMPTOM_WATCH"
    OUTBREAK_SUGGESTION = "OUTBREAK_SUGGESTION"
    DEVICE_LINK = "DEVICE_LINK"

    @classmethod
    def display_name(cls, category: "NotificationCategory | str") -> str:
        """Get human-readable display name for a category."""
        display_names = {
            cls.ADMISSION_SCREENING: "Admission Screening",
            cls.VAX_GAP: "Vaccine Gap",
            cls.LINE_LIST_REVIEW: "Line List Review",
            cls.SYMPTOM_WATCH: "Symptom Watch",
            cls.OUTBREAK_SUGGESTION: "Outbreak Suggestion",
            cls.DEVICE_LINK: "Device Link",
        }
        if isinstance(category, str):
            try:
                category = cls(category)
            except ValueError:
                return category
        return display_names.get(category, category.value)


class NotificationStatus(Enum):
    """Notification status, owned by the consuming UI."""
    UNREAD = "unread"
    READ = "read"
    DISMISSED = "dismissed"


class AuditAction(Enum):
    """Actions tracked in audit log."""
    CREATED = "created"
    READ = "read"
    DISMISSED = "dismissed"
    ACTED = "acted"
    CLEARED = "cleared"


def parse_datetime(val) -> datetime | None:
    """Parse a stored ISO timestamp into an aware UTC datetime."""
    if val is None:
        return None
    if isinstance(val, datetime):
        parsed = val
    else:
        parsed = datetime.fromisoformat(str(val).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_datetime(val: datetime | None, timespec: str = "milliseconds") -> str | None:
    """Format a datetime as a UTC ISO string (millisecond precision by default)."""
    if val is None:
        return None
    if val.tzinfo is None:
        val = val.replace(tzinfo=timezone.utc)
    return val.astimezone(timezone.utc).isoformat(timespec=timespec).replace("+00:00", "Z")


@dataclass
class ClusterMember:
    """One contributing record of an outbreak suggestion."""
    resident_id: str
    resident_name: str
    ref_type: str  # "abt" or "note"
    ref_id: str

    def to_dict(self) -> dict[str, str]:
        return {
            "residentId": self.resident_id,
            "residentName": self.resident_name,
            "refType": self.ref_type,
            "refId": self.ref_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ClusterMember":
        return cls(
            resident_id=data.get("residentId", ""),
            resident_name=data.get("residentName", "Unknown"),
            ref_type=data.get("refType", ""),
            ref_id=data.get("refId", ""),
        )


@dataclass
class Notification:
    """A pipeline-produced notification with its UI-owned status fields."""
    id: str
    facility_id: str
    rule_id: str
    category: NotificationCategory
    message: str
    status: NotificationStatus = NotificationStatus.UNREAD

    # Resident / location snapshot
    resident_id: str | None = None
    unit: str | None = None
    room: str | None = None

    # Source references (abtId, ipId, vaxId, noteId)
    refs: dict[str, str] = field(default_factory=dict)
    cluster_details: list[ClusterMember] | None = None

    # Recommended follow-up action (line listing)
    action: str | None = None
    payload: dict[str, Any] | None = None

    # Timestamps
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    read_at: datetime | None = None
    acted_at: datetime | None = None
    line_list_event_id: str | None = None

    @property
    def syndrome(self) -> str | None:
        """Syndrome label carried by outbreak suggestions."""
        if self.payload:
            return self.payload.get("syndrome")
        return None

    def is_unread(self) -> bool:
        return self.status == NotificationStatus.UNREAD

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "facilityId": self.facility_id,
            "ruleId": self.rule_id,
            "category": self.category.value,
            "categoryDisplay": NotificationCategory.display_name(self.category),
            "status": self.status.value,
            "residentId": self.resident_id,
            "unit": self.unit,
            "room": self.room,
            "message": self.message,
            "refs": self.refs,
            "clusterDetails": (
                [m.to_dict() for m in self.cluster_details]
                if self.cluster_details is not None else None
            ),
            "action": self.action,
            "payload": self.payload,
            "createdAtISO": format_datetime(self.created_at),
            "readAtISO": format_datetime(self.read_at),
            "actedAt": format_datetime(self.acted_at),
            "lineListEventId": self.line_list_event_id,
        }

    def to_row(self) -> tuple:
        """Convert to a tuple in schema column order."""
        return (
            self.facility_id,
            self.id,
            self.rule_id,
            self.category.value,
            self.status.value,
            self.resident_id,
            self.unit,
            self.room,
            self.message,
            json.dumps(self.refs) if self.refs else None,
            (
                json.dumps([m.to_dict() for m in self.cluster_details])
                if self.cluster_details is not None else None
            ),
            self.action,
            json.dumps(self.payload) if self.payload is not None else None,
            format_datetime(self.created_at),
            format_datetime(self.read_at),
            format_datetime(self.acted_at),
            self.line_list_event_id,
        )

    @classmethod
    def from_row(cls, row: tuple) -> "Notification":
        """Create from database row tuple."""
        # Row order matches schema: facility_id, id, rule_id, category, status,
        # resident_id, unit, room, message, refs, cluster_details, action,
        # payload, created_at, read_at, acted_at, line_list_event_id
        cluster_json = row[10]
        cluster_details = None
        if cluster_json:
            cluster_details = [ClusterMember.from_dict(m) for m in json.loads(cluster_json)]

        return cls(
            facility_id=row[0],
            id=row[1],
            rule_id=row[2],
            category=NotificationCategory(row[3]),
            status=NotificationStatus(row[4]),
            resident_id=row[5],
            unit=row[6],
            room=row[7],
            message=row[8] or "",
            refs=json.loads(row[9]) if row[9] else {},
            cluster_details=cluster_details,
            action=row[11],
            payload=json.loads(row[12]) if row[12] else None,
            created_at=parse_datetime(row[13]),
            read_at=parse_datetime(row[14]),
            acted_at=parse_datetime(row[15]),
            line_list_event_id=row[16],
        )


@dataclass(frozen=True)
class RunWatermark:
    """How much input data the pipeline has already considered for a facility.

    `version` increments on every commit and is used to detect a concurrent
    run that committed between our read and our write.
    """
    last_run_at: datetime = EPOCH
    last_seen_event_at: datetime = EPOCH
    version: int = 0

    @property
    def is_first_run(self) -> bool:
        return self.last_run_at == EPOCH

    def advance(self, run_at: datetime, seen_event_at: datetime) -> "RunWatermark":
        """Return the next watermark; `last_seen_event_at` never moves backwards."""
        return RunWatermark(
            last_run_at=run_at,
            last_seen_event_at=max(self.last_seen_event_at, seen_event_at),
            version=self.version + 1,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastDetectionRunAtISO": format_datetime(self.last_run_at),
            "lastSeenEventAtISO": format_datetime(self.last_seen_event_at),
            "version": self.version,
        }


@dataclass
class NotificationAuditEntry:
    """Audit log entry for notification actions."""
    id: int
    facility_id: str
    notification_id: str
    action: AuditAction
    performed_by: str | None
    performed_at: datetime
    details: str | None = None

    @classmethod
    def from_row(cls, row: tuple) -> "NotificationAuditEntry":
        """Create from database row tuple."""
        return cls(
            id=row[0],
            facility_id=row[1],
            notification_id=row[2],
            action=AuditAction(row[3]),
            performed_by=row[4],
            performed_at=parse_datetime(row[5]),
            details=row[6],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "performedBy": self.performed_by,
            "performedAt": format_datetime(self.performed_at),
            "details": self.details,
        }
