"""Admission screening rule."""

from datetime import timedelta

from common.notification_store import NotificationCategory

from ..config import config
from ..models import AlertCandidate, RecordSnapshot, ResidentRefKind
from .base import BaseRule, EvaluationContext


class AdmissionScreeningRule(BaseRule):
    """Recently admitted active residents with no admission screening note."""

    def __init__(self, window_hours: int | None = None, note_type: str | None = None):
        if window_hours is None:
            window_hours = config.ADMISSION_WINDOW_HOURS
        self.window = timedelta(hours=window_hours)
        self.note_type = note_type or config.ADMISSION_SCREENING_NOTE_TYPE

    @property
    def rule_id(self) -> str:
        return "adm_screening_rule"

    def screened_residents(self, snapshot: RecordSnapshot) -> set[str]:
        """MRNs with at least one admission screening note."""
        return {
            note.resident_ref.id
            for note in snapshot.notes.values()
            if note.note_type == self.note_type
            and note.resident_ref is not None
            and note.resident_ref.kind == ResidentRefKind.MRN
        }

    def evaluate(self, snapshot: RecordSnapshot, context: EvaluationContext) -> list[AlertCandidate]:
        cutoff = context.now - self.window
        screened = self.screened_residents(snapshot)
        candidates = []
        for resident in snapshot.residents.values():
            if not resident.is_active or resident.admission_date is None:
                continue
            if resident.admission_date <= cutoff or resident.mrn in screened:
                continue

            candidates.append(AlertCandidate(
                rule_id=self.rule_id,
                category=NotificationCategory.ADMISSION_SCREENING,
                message=(
                    f"{resident.display_name or resident.mrn} was admitted recently. "
                    f"An admission screening note is required."
                ),
                ref_id=resident.mrn,
                resident_id=resident.mrn,
                unit=resident.current_unit,
                room=resident.current_room,
            ))
        return candidates
