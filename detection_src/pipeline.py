"""Detection pipeline: (snapshot, watermark, now) -> (new notifications, new watermark).

The pipeline is a pure function of its inputs. Persisting the result is the
caller's job (see DetectionMonitor and NotificationStore.commit_run).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from common.notification_store import Notification, RunWatermark

from .cluster import ClusterAggregator
from .dates import to_utc, utc_now
from .gate import GateDecision, evaluate_gate
from .identity import assign_identities
from .keywords import KeywordTables
from .models import AlertCandidate, RecordSnapshot
from .rules import BaseRule, EvaluationContext, get_default_rules

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Outcome of one pipeline pass."""
    facility_id: str
    now: datetime
    gate: GateDecision
    watermark: RunWatermark
    notifications: list[Notification] = field(default_factory=list)
    candidate_count: int = 0
    rule_errors: dict[str, str] = field(default_factory=dict)

    # Set by the caller once the batch has been persisted
    committed: bool = False
    inserted_ids: list[str] = field(default_factory=list)

    @property
    def ran(self) -> bool:
        return self.gate.should_run

    @property
    def skipped(self) -> bool:
        return not self.gate.should_run

    def summary(self) -> dict:
        return {
            "facility_id": self.facility_id,
            "ran": self.ran,
            "reason": self.gate.reason,
            "candidates": self.candidate_count,
            "new_notifications": len(self.notifications),
            "committed": self.committed,
            "rule_errors": self.rule_errors,
            "watermark": self.watermark.to_dict(),
        }


def evaluate_rules(
    snapshot: RecordSnapshot,
    context: EvaluationContext,
    rules: list[BaseRule],
    errors: dict[str, str] | None = None,
) -> list[AlertCandidate]:
    """Run every rule, isolating failures so one broken rule cannot stop the run."""
    candidates: list[AlertCandidate] = []
    for rule in rules:
        try:
            found = rule.evaluate(snapshot, context)
        except Exception as e:
            logger.exception(f"Rule {rule.rule_id} failed for facility {snapshot.facility_id}")
            if errors is not None:
                errors[rule.rule_id] = str(e)
            continue
        if found:
            logger.debug(f"{rule.rule_id}: {len(found)} candidate(s)")
        candidates.extend(found)
    return candidates


def run_detection_pipeline(
    snapshot: RecordSnapshot,
    watermark: RunWatermark,
    now: datetime | None = None,
    existing_notifications: list[Notification] | None = None,
    rules: list[BaseRule] | None = None,
    aggregator: ClusterAggregator | None = None,
    tables: KeywordTables | None = None,
) -> PipelineResult:
    """Run one detection pass.

    Args:
        snapshot: Point-in-time view of the facility's records
        watermark: Watermark from the previous run (epoch sentinel if none)
        now: Run timestamp (defaults to the current UTC time)
        existing_notifications: Every stored notification for the facility,
            any status; used for dedup and cluster suppression
        rules: Rule evaluators (defaults to the fixed rule set)
        aggregator: Cluster aggregator, always evaluated after the rules
        tables: Keyword/tag tables

    Returns:
        PipelineResult. When the change gate says nothing changed the result
        carries no notifications and the unchanged watermark.
    """
    now = to_utc(now) if now else utc_now()
    existing_notifications = existing_notifications or []

    gate = evaluate_gate(snapshot, watermark, now)
    if not gate.should_run:
        logger.info(f"Nothing new for facility {snapshot.facility_id}; skipping run")
        return PipelineResult(
            facility_id=snapshot.facility_id,
            now=now,
            gate=gate,
            watermark=watermark,
        )

    context = EvaluationContext(
        now=now,
        watermark=watermark,
        tables=tables or KeywordTables(),
        existing_notifications=existing_notifications,
    )
    rule_set = list(rules) if rules is not None else get_default_rules()
    rule_set.append(aggregator or ClusterAggregator())

    errors: dict[str, str] = {}
    candidates = evaluate_rules(snapshot, context, rule_set, errors)

    notifications = assign_identities(
        candidates,
        existing_ids={n.id for n in existing_notifications},
        facility_id=snapshot.facility_id,
        now=now,
    )

    logger.info(
        f"Facility {snapshot.facility_id}: {len(candidates)} candidate(s), "
        f"{len(notifications)} new notification(s) ({gate.reason})"
    )

    return PipelineResult(
        facility_id=snapshot.facility_id,
        now=now,
        gate=gate,
        watermark=watermark.advance(now, gate.current_max_event_time),
        notifications=notifications,
        candidate_count=len(candidates),
        rule_errors=errors,
    )
