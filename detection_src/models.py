"""Data models for the Detection & Notification Pipeline.

Source records are read-only views of the facility record store. They are
built from the facility JSON export (camelCase keys); missing or malformed
fields become None so that rules can skip the record instead of failing.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Optional

from common.notification_store import ClusterMember, Notification, NotificationCategory

from .dates import parse_timestamp


def _text(value: Any) -> str | None:
    """String field value; anything else (numbers, lists, empty) becomes None."""
    if isinstance(value, str) and value:
        return value
    return None


class ResidentRefKind(Enum):
    """How a record points at the resident it concerns."""
    MRN = "mrn"
    QUARANTINE = "quarantine"


@dataclass(frozen=True)
class ResidentRef:
    """Tagged reference to a resident: an MRN or a quarantine temp id."""
    kind: ResidentRefKind
    id: str

    @classmethod
    def from_dict(cls, data: Any) -> Optional["ResidentRef"]:
        """Parse ``{"kind": "mrn"|"quarantine", "id": ...}``; None if unusable."""
        if not isinstance(data, dict):
            return None
        ref_id = data.get("id")
        try:
            kind = ResidentRefKind(data.get("kind"))
        except ValueError:
            return None
        if not ref_id:
            return None
        return cls(kind=kind, id=str(ref_id))

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "id": self.id}


@dataclass
class ResidentInfo:
    """Resolved display details for a resident reference."""
    resident_id: str
    name: str | None = None
    unit: str | None = None
    room: str | None = None
    status: str | None = None


@dataclass
class Resident:
    """Resident on the facility census, keyed by MRN."""
    mrn: str
    display_name: str
    status: Optional[str] = None  # Active, Discharged, Deceased
    admission_date: Optional[datetime] = None
    current_unit: Optional[str] = None
    current_room: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == "Active"

    @classmethod
    def from_dict(cls, data: dict) -> "Resident":
        return cls(
            mrn=str(data.get("mrn") or ""),
            display_name=_text(data.get("displayName")) or "",
            status=_text(data.get("status")),
            admission_date=parse_timestamp(data.get("admissionDate")),
            current_unit=_text(data.get("currentUnit")) or None,
            current_room=_text(data.get("currentRoom")) or None,
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )


@dataclass
class QuarantineResident:
    """Resident held in quarantine until matched to an MRN."""
    temp_id: str  # Q:<uuid>
    display_name: Optional[str] = None
    unit_snapshot: Optional[str] = None
    room_snapshot: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> "QuarantineResident":
        return cls(
            temp_id=str(data.get("tempId") or ""),
            display_name=_text(data.get("displayName")),
            unit_snapshot=_text(data.get("unitSnapshot")) or None,
            room_snapshot=_text(data.get("roomSnapshot")) or None,
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )


@dataclass
class AntibioticCourse:
    """Antibiotic course for a resident."""
    id: str
    resident_ref: Optional[ResidentRef]
    status: Optional[str] = None  # active, completed, discontinued
    medication: str = ""
    indication: Optional[str] = None
    syndrome_category: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def indication_text(self) -> str:
        """Indication and syndrome category combined for keyword matching."""
        return f"{self.indication or ''} {self.syndrome_category or ''}".strip()

    @classmethod
    def from_dict(cls, data: dict) -> "AntibioticCourse":
        return cls(
            id=str(data.get("id") or ""),
            resident_ref=ResidentRef.from_dict(data.get("residentRef")),
            status=_text(data.get("status")),
            medication=_text(data.get("medication")) or "",
            indication=_text(data.get("indication")),
            syndrome_category=_text(data.get("syndromeCategory")),
            start_date=parse_timestamp(data.get("startDate")),
            end_date=parse_timestamp(data.get("endDate")),
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )


@dataclass
class InfectionEvent:
    """Infection / isolation event for a resident."""
    id: str
    resident_ref: Optional[ResidentRef]
    status: Optional[str] = None  # active, resolved, historical
    infection_category: Optional[str] = None
    isolation_type: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @classmethod
    def from_dict(cls, data: dict) -> "InfectionEvent":
        return cls(
            id=str(data.get("id") or ""),
            resident_ref=ResidentRef.from_dict(data.get("residentRef")),
            status=_text(data.get("status")),
            infection_category=_text(data.get("infectionCategory")),
            isolation_type=_text(data.get("isolationType")),
            notes=_text(data.get("notes")),
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )


@dataclass
class VaccinationEvent:
    """Vaccination record (given, due, declined...)."""
    id: str
    resident_ref: Optional[ResidentRef]
    vaccine: str = ""
    status: Optional[str] = None
    date_given: Optional[datetime] = None
    due_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_due(self) -> bool:
        return self.status in ("due", "overdue")

    @classmethod
    def from_dict(cls, data: dict) -> "VaccinationEvent":
        # dateGiven replaced administeredDate; older records only carry the latter
        given = data.get("dateGiven") or data.get("administeredDate")
        return cls(
            id=str(data.get("id") or ""),
            resident_ref=ResidentRef.from_dict(data.get("residentRef")),
            vaccine=_text(data.get("vaccine")) or "",
            status=_text(data.get("status")),
            date_given=parse_timestamp(given),
            due_date=parse_timestamp(data.get("dueDate")),
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )


@dataclass
class ResidentNote:
    """Free-text note about a resident."""
    id: str
    resident_ref: Optional[ResidentRef]
    note_type: str = ""
    body: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ResidentNote":
        return cls(
            id=str(data.get("id") or ""),
            resident_ref=ResidentRef.from_dict(data.get("residentRef")),
            note_type=_text(data.get("noteType")) or "",
            body=_text(data.get("body")) or "",
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )


def last_modified(record) -> datetime | None:
    """``updated_at`` falling back to ``created_at``."""
    return record.updated_at or record.created_at


def changed_since(record, since: datetime) -> bool:
    """True if the record was created or updated after `since`."""
    return any(ts is not None and ts > since for ts in (record.created_at, record.updated_at))


@dataclass
class RecordSnapshot:
    """Point-in-time, read-only view of one facility's records."""
    facility_id: str
    residents: dict[str, Resident] = field(default_factory=dict)
    quarantine: dict[str, QuarantineResident] = field(default_factory=dict)
    antibiotic_courses: dict[str, AntibioticCourse] = field(default_factory=dict)
    infections: dict[str, InfectionEvent] = field(default_factory=dict)
    vaccinations: dict[str, VaccinationEvent] = field(default_factory=dict)
    notes: dict[str, ResidentNote] = field(default_factory=dict)

    def resolve_resident(self, ref: ResidentRef | None) -> ResidentInfo | None:
        """Resolve a resident reference to display details.

        Returns None when the reference is missing. An unknown id still
        resolves (without name or location) so rules can scope by it.
        """
        if ref is None:
            return None
        if ref.kind == ResidentRefKind.MRN:
            resident = self.residents.get(ref.id)
            if resident is None:
                return ResidentInfo(resident_id=ref.id)
            return ResidentInfo(
                resident_id=ref.id,
                name=resident.display_name or None,
                unit=resident.current_unit,
                room=resident.current_room,
                status=resident.status,
            )
        quarantined = self.quarantine.get(ref.id)
        if quarantined is None:
            return ResidentInfo(resident_id=ref.id)
        return ResidentInfo(
            resident_id=ref.id,
            name=quarantined.display_name,
            unit=quarantined.unit_snapshot,
            room=quarantined.room_snapshot,
        )

    def infections_for(self, ref: ResidentRef) -> list[InfectionEvent]:
        """Infection events of one resident, oldest first."""
        matches = [ip for ip in self.infections.values() if ip.resident_ref == ref]
        return sorted(matches, key=lambda ip: (ip.created_at is None, ip.created_at or 0, ip.id))

    def iter_records(self) -> Iterator:
        """Every monitored record, for watermark computation."""
        yield from self.residents.values()
        yield from self.quarantine.values()
        yield from self.antibiotic_courses.values()
        yield from self.infections.values()
        yield from self.vaccinations.values()
        yield from self.notes.values()

    @classmethod
    def from_dict(cls, data: dict, facility_id: str | None = None) -> "RecordSnapshot":
        """Build a snapshot from the facility export shape.

        Collections may be given either as ``{id: record}`` maps or lists.
        """
        def values(key: str) -> list[dict]:
            raw = data.get(key) or {}
            items = raw.values() if isinstance(raw, dict) else raw
            return [item for item in items if isinstance(item, dict)]

        residents = [Resident.from_dict(r) for r in values("residents")]
        quarantine = [QuarantineResident.from_dict(q) for q in values("quarantine")]
        abts = [AntibioticCourse.from_dict(a) for a in values("abts")]
        infections = [InfectionEvent.from_dict(i) for i in values("infections")]
        vaccinations = [VaccinationEvent.from_dict(v) for v in values("vaxEvents")]
        notes = [ResidentNote.from_dict(n) for n in values("notes")]

        return cls(
            facility_id=facility_id or data.get("facilityId") or "default",
            residents={r.mrn: r for r in residents if r.mrn},
            quarantine={q.temp_id: q for q in quarantine if q.temp_id},
            antibiotic_courses={a.id: a for a in abts if a.id},
            infections={i.id: i for i in infections if i.id},
            vaccinations={v.id: v for v in vaccinations if v.id},
            notes={n.id: n for n in notes if n.id},
        )


@dataclass
class AlertCandidate:
    """A rule's proposal for a notification, before identity and dedup."""
    rule_id: str
    category: NotificationCategory
    message: str
    ref_id: str
    resident_id: str | None = None
    unit: str | None = None
    room: str | None = None
    refs: dict[str, str] = field(default_factory=dict)
    cluster_details: list[ClusterMember] | None = None
    action: str | None = None
    payload: dict[str, Any] | None = None

    @property
    def scope(self) -> str:
        """Resident id, else unit, else the facility surrogate."""
        return self.resident_id or self.unit or "facility"

    def to_notification(self, notification_id: str, facility_id: str, created_at: datetime) -> Notification:
        return Notification(
            id=notification_id,
            facility_id=facility_id,
            rule_id=self.rule_id,
            category=self.category,
            message=self.message,
            resident_id=self.resident_id,
            unit=self.unit,
            room=self.room,
            refs=dict(self.refs),
            cluster_details=self.cluster_details,
            action=self.action,
            payload=self.payload,
            created_at=created_at,
        )
