"""Outbreak suggestion: syndrome clusters by unit.

Groups respiratory/GI antibiotic starts and symptom-tagged notes from the
last 96 hours by (unit, syndrome). A group with at least two distinct
residents becomes one outbreak suggestion for that unit, unless an unread
suggestion for the same unit and syndrome was raised inside the window.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from common.notification_store import ClusterMember, Notification, NotificationCategory

from .config import config
from .dates import epoch_millis
from .keywords import find_hashtags, match_keywords, syndrome_labels
from .models import AlertCandidate, RecordSnapshot
from .rules.base import BaseRule, EvaluationContext

logger = logging.getLogger(__name__)

OUTBREAK_RULE_ID = "outbreak_suggestion_rule"


class ClusterSeverity(Enum):
    """Severity of a syndrome cluster by distinct resident count."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def for_count(cls, resident_count: int) -> "ClusterSeverity":
        if resident_count >= 5:
            return cls.CRITICAL
        if resident_count >= 4:
            return cls.HIGH
        if resident_count >= 3:
            return cls.MEDIUM
        return cls.LOW


@dataclass
class SyndromeCluster:
    """Signals sharing one unit and syndrome inside the window."""
    unit: str
    syndrome: str
    members: list[ClusterMember] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.unit}_{self.syndrome}"

    @property
    def resident_ids(self) -> set[str]:
        return {m.resident_id for m in self.members}

    @property
    def severity(self) -> ClusterSeverity:
        return ClusterSeverity.for_count(len(self.resident_ids))

    def add_member(self, member: ClusterMember) -> bool:
        """Add a contributing record.

        Returns True if added, False if that record is already present.
        """
        if any(m.ref_type == member.ref_type and m.ref_id == member.ref_id for m in self.members):
            return False
        self.members.append(member)
        return True


class ClusterAggregator(BaseRule):
    """Detects at least N distinct residents on one unit sharing a syndrome signal."""

    def __init__(
        self,
        window_hours: int | None = None,
        min_residents: int | None = None,
    ):
        if window_hours is None:
            window_hours = config.CLUSTER_WINDOW_HOURS
        if min_residents is None:
            min_residents = config.CLUSTER_MIN_RESIDENTS
        self.window = timedelta(hours=window_hours)
        self.min_residents = min_residents

    @property
    def rule_id(self) -> str:
        return OUTBREAK_RULE_ID

    def build_clusters(self, snapshot: RecordSnapshot, context: EvaluationContext) -> dict[tuple[str, str], SyndromeCluster]:
        """Group recent signals by (unit, syndrome).

        Records whose resident has no resolvable unit are left out.
        """
        cutoff = context.now - self.window
        tables = context.tables
        clusters: dict[tuple[str, str], SyndromeCluster] = {}

        def add(unit: str, syndrome: str, member: ClusterMember) -> None:
            cluster = clusters.setdefault((unit, syndrome), SyndromeCluster(unit, syndrome))
            cluster.add_member(member)

        for abt in snapshot.antibiotic_courses.values():
            event_time = abt.created_at or abt.updated_at
            if event_time is None or event_time <= cutoff:
                continue
            info = snapshot.resolve_resident(abt.resident_ref)
            if info is None or not info.unit:
                continue
            for syndrome in syndrome_labels(abt.indication_text, tables):
                add(info.unit, syndrome, ClusterMember(
                    resident_id=info.resident_id,
                    resident_name=info.name or "Unknown",
                    ref_type="abt",
                    ref_id=abt.id,
                ))

        for note in snapshot.notes.values():
            event_time = note.created_at or note.updated_at
            if event_time is None or event_time <= cutoff:
                continue
            info = snapshot.resolve_resident(note.resident_ref)
            if info is None or not info.unit:
                continue
            signals = find_hashtags(note.body, tables.trigger_tags)
            signals += match_keywords(note.body, tables.cluster_phrases)
            syndromes = []
            for signal in signals:
                syndrome = tables.syndrome_for_signal(signal)
                if syndrome not in syndromes:
                    syndromes.append(syndrome)
            for syndrome in syndromes:
                add(info.unit, syndrome, ClusterMember(
                    resident_id=info.resident_id,
                    resident_name=info.name or "Unknown",
                    ref_type="note",
                    ref_id=note.id,
                ))

        return clusters

    def is_suppressed(self, cluster: SyndromeCluster, existing: list[Notification], now: datetime) -> bool:
        """True if an unread suggestion for this unit/syndrome exists inside the window."""
        cutoff = now - self.window
        for notification in existing:
            if (
                notification.rule_id == self.rule_id
                and notification.is_unread()
                and notification.unit == cluster.unit
                and notification.syndrome == cluster.syndrome
                and notification.created_at is not None
                and notification.created_at > cutoff
            ):
                return True
        return False

    def evaluate(self, snapshot: RecordSnapshot, context: EvaluationContext) -> list[AlertCandidate]:
        candidates = []
        for cluster in self.build_clusters(snapshot, context).values():
            resident_count = len(cluster.resident_ids)
            if resident_count < self.min_residents:
                continue
            if self.is_suppressed(cluster, context.existing_notifications, context.now):
                logger.debug(f"Cluster {cluster.key} already has an unread suggestion")
                continue

            hours = int(self.window.total_seconds() // 3600)
            logger.info(
                f"Possible cluster on unit {cluster.unit}: {resident_count} residents "
                f"with {cluster.syndrome} ({cluster.severity.value})"
            )
            candidates.append(AlertCandidate(
                rule_id=self.rule_id,
                category=NotificationCategory.OUTBREAK_SUGGESTION,
                message=(
                    f"Possible cluster in Unit {cluster.unit}: {resident_count} residents "
                    f"with {cluster.syndrome} in {hours}h."
                ),
                # Time-stamped so a fresh cluster can fire once this one is read
                ref_id=f"{cluster.key}_{epoch_millis(context.now)}",
                unit=cluster.unit,
                cluster_details=list(cluster.members),
                payload={
                    "syndrome": cluster.syndrome,
                    "residentCount": resident_count,
                    "severity": cluster.severity.value,
                    "windowHours": hours,
                },
            ))
        return candidates
