"""Antibiotic course rules.

- abt_syndrome_rule: respiratory/GI indication -> recommend line listing
- abt_review_rule: course running >7 days without end date, or past its end date
- uti_device_link_rule: urinary indication + device-associated infection event
"""

import logging
from datetime import datetime, timedelta

from common.notification_store import NotificationCategory, format_datetime

from ..config import config
from ..keywords import GI, RESPIRATORY, match_keywords, syndrome_labels
from ..models import AlertCandidate, AntibioticCourse, RecordSnapshot
from .base import BaseRule, EvaluationContext, resident_name

logger = logging.getLogger(__name__)

ADD_TO_LINE_LIST = "add_to_line_list"
SYMPTOM_CLASS = {RESPIRATORY: "resp", GI: "gi"}


def line_list_payload(
    resident_id: str,
    syndrome: str,
    detected_at: datetime,
    source_event_id: str,
    notes_snippet: str | None = None,
) -> dict:
    """Structured context for the "add to line list" follow-up action."""
    payload = {
        "residentId": resident_id,
        "symptomClass": SYMPTOM_CLASS.get(syndrome, "resp"),
        "detectedAt": format_datetime(detected_at),
        "sourceEventId": source_event_id,
    }
    if notes_snippet:
        payload["notesSnippet"] = notes_snippet
    return payload


def _in_scope(abt: AntibioticCourse, context: EvaluationContext) -> bool:
    return abt.is_active or context.is_newer(abt)


class AntibioticSyndromeRule(BaseRule):
    """Respiratory or GI antibiotic indication suggests line-list inclusion."""

    @property
    def rule_id(self) -> str:
        return "abt_syndrome_rule"

    def evaluate(self, snapshot: RecordSnapshot, context: EvaluationContext) -> list[AlertCandidate]:
        candidates = []
        for abt in snapshot.antibiotic_courses.values():
            if not _in_scope(abt, context) or abt.resident_ref is None:
                continue

            labels = syndrome_labels(abt.indication_text, context.tables)
            if not labels:
                continue

            # Respiratory wins when both keyword sets match
            syndrome = labels[0]
            info = snapshot.resolve_resident(abt.resident_ref)
            candidates.append(AlertCandidate(
                rule_id=self.rule_id,
                category=NotificationCategory.LINE_LIST_REVIEW,
                message=(
                    f"{resident_name(info)} started on antibiotic for {syndrome} "
                    f"indication. Consider line list inclusion."
                ),
                ref_id=abt.id,
                resident_id=info.resident_id,
                unit=info.unit,
                room=info.room,
                refs={"abtId": abt.id},
                action=ADD_TO_LINE_LIST,
                payload=line_list_payload(
                    info.resident_id, syndrome, context.now, abt.id,
                    notes_snippet=abt.indication_text or None,
                ),
            ))
        return candidates


class AntibioticReviewRule(BaseRule):
    """Active course that has run too long without an end date, or is past its end date."""

    def __init__(self, review_after_days: int | None = None):
        if review_after_days is None:
            review_after_days = config.ABT_REVIEW_DAYS
        self.review_after = timedelta(days=review_after_days)

    @property
    def rule_id(self) -> str:
        return "abt_review_rule"

    def review_reason(self, abt: AntibioticCourse, now: datetime) -> str | None:
        """Why the course needs review, or None."""
        if abt.end_date is None:
            if abt.start_date is not None and abt.start_date < now - self.review_after:
                return f"Active for > {self.review_after.days} days with no end date."
            return None
        if abt.end_date < now:
            return "End date has passed."
        return None

    def evaluate(self, snapshot: RecordSnapshot, context: EvaluationContext) -> list[AlertCandidate]:
        candidates = []
        for abt in snapshot.antibiotic_courses.values():
            # Duration is time-dependent, so every active course is re-checked
            if not abt.is_active or abt.resident_ref is None:
                continue

            reason = self.review_reason(abt, context.now)
            if reason is None:
                continue

            info = snapshot.resolve_resident(abt.resident_ref)
            candidates.append(AlertCandidate(
                rule_id=self.rule_id,
                category=NotificationCategory.LINE_LIST_REVIEW,
                message=f"{resident_name(info)} is on {abt.medication or 'an antibiotic'}. {reason}",
                ref_id=abt.id,
                resident_id=info.resident_id,
                unit=info.unit,
                room=info.room,
                refs={"abtId": abt.id},
            ))
        return candidates


class UTIDeviceLinkRule(BaseRule):
    """Urinary antibiotic plus a device-associated infection event for the same resident."""

    @property
    def rule_id(self) -> str:
        return "uti_device_link_rule"

    def evaluate(self, snapshot: RecordSnapshot, context: EvaluationContext) -> list[AlertCandidate]:
        tables = context.tables
        candidates = []
        for abt in snapshot.antibiotic_courses.values():
            if not abt.is_active or abt.resident_ref is None:
                continue
            if not match_keywords(abt.indication_text, tables.urinary):
                continue

            for ip in snapshot.infections_for(abt.resident_ref):
                ip_details = f"{ip.infection_category or ''} {ip.notes or ''}"
                if not match_keywords(ip_details, tables.device):
                    continue

                info = snapshot.resolve_resident(abt.resident_ref)
                candidates.append(AlertCandidate(
                    rule_id=self.rule_id,
                    category=NotificationCategory.DEVICE_LINK,
                    message=(
                        "UTI-related antibiotic + urinary device present; review for "
                        "CAUTI criteria and device necessity."
                    ),
                    ref_id=f"{abt.id}_{ip.id}",
                    resident_id=info.resident_id,
                    unit=info.unit,
                    room=info.room,
                    refs={"abtId": abt.id, "ipId": ip.id},
                ))
                # At most one device link per course
                break
        return candidates
