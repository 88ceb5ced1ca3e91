"""Infection event review rule."""

from datetime import timedelta

from common.notification_store import NotificationCategory

from ..config import config
from ..models import AlertCandidate, RecordSnapshot
from .base import BaseRule, EvaluationContext, resident_name


class InfectionReviewRule(BaseRule):
    """Active infection events older than the review window (14 days)."""

    def __init__(self, review_after_days: int | None = None):
        if review_after_days is None:
            review_after_days = config.IP_REVIEW_DAYS
        self.review_after = timedelta(days=review_after_days)

    @property
    def rule_id(self) -> str:
        return "ip_review_rule"

    def evaluate(self, snapshot: RecordSnapshot, context: EvaluationContext) -> list[AlertCandidate]:
        cutoff = context.now - self.review_after
        candidates = []
        for ip in snapshot.infections.values():
            if not ip.is_active or ip.resident_ref is None or ip.created_at is None:
                continue
            if ip.created_at >= cutoff:
                continue

            info = snapshot.resolve_resident(ip.resident_ref)
            candidates.append(AlertCandidate(
                rule_id=self.rule_id,
                category=NotificationCategory.LINE_LIST_REVIEW,
                message=(
                    f"{resident_name(info)} has an active infection "
                    f"({ip.infection_category or 'Unknown'}) for > {self.review_after.days} days. "
                    f"Consider reviewing isolation status."
                ),
                ref_id=ip.id,
                resident_id=info.resident_id,
                unit=info.unit,
                room=info.room,
                refs={"ipId": ip.id},
            ))
        return candidates
