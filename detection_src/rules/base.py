"""Abstract base class for notification rules."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from common.notification_store import Notification, RunWatermark

from ..keywords import KeywordTables
from ..models import AlertCandidate, RecordSnapshot, ResidentInfo, changed_since

UNKNOWN_RESIDENT = "Unknown Resident"


@dataclass
class EvaluationContext:
    """Everything a rule may read besides the snapshot itself."""
    now: datetime
    watermark: RunWatermark = field(default_factory=RunWatermark)
    tables: KeywordTables = field(default_factory=KeywordTables)
    existing_notifications: list[Notification] = field(default_factory=list)

    def is_newer(self, record) -> bool:
        """True if the record changed since the last pipeline run."""
        return changed_since(record, self.watermark.last_run_at)


class BaseRule(ABC):
    """Abstract base class for rule evaluators.

    A rule scans the snapshot and returns alert candidates. Rules never
    mutate the snapshot, and a record missing the data a rule needs is
    skipped by that rule rather than raising.
    """

    @property
    @abstractmethod
    def rule_id(self) -> str:
        """Stable identifier folded into notification ids."""
        pass

    @abstractmethod
    def evaluate(
        self,
        snapshot: RecordSnapshot,
        context: EvaluationContext,
    ) -> list[AlertCandidate]:
        """Evaluate the rule against a snapshot.

        Args:
            snapshot: Read-only facility records
            context: Run time, watermark, keyword tables, stored notifications

        Returns:
            Alert candidates (not yet deduplicated)
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.rule_id})"


def resident_name(info: ResidentInfo | None) -> str:
    if info and info.name:
        return info.name
    return UNKNOWN_RESIDENT
