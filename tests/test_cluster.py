"""Tests for unit-level syndrome cluster detection."""

from datetime import timedelta

import pytest

from common.notification_store import (
    Notification,
    NotificationCategory,
    NotificationStatus,
)
from detection_src.cluster import OUTBREAK_RULE_ID, ClusterAggregator, ClusterSeverity
from detection_src.rules import EvaluationContext


def existing_suggestion(created_at, unit="A", syndrome="Respiratory",
                        status=NotificationStatus.UNREAD):
    return Notification(
        id=f"{OUTBREAK_RULE_ID}_{unit}_{unit}_{syndrome}_1_{created_at.date().isoformat()}",
        facility_id="F1",
        rule_id=OUTBREAK_RULE_ID,
        category=NotificationCategory.OUTBREAK_SUGGESTION,
        message="Possible cluster",
        status=status,
        unit=unit,
        payload={"syndrome": syndrome},
        created_at=created_at,
    )


class TestClusterSeverity:
    """Severity by distinct resident count."""

    def test_thresholds(self):
        assert ClusterSeverity.for_count(2) == ClusterSeverity.LOW
        assert ClusterSeverity.for_count(3) == ClusterSeverity.MEDIUM
        assert ClusterSeverity.for_count(4) == ClusterSeverity.HIGH
        assert ClusterSeverity.for_count(7) == ClusterSeverity.CRITICAL


class TestClusterAggregator:
    """outbreak_suggestion_rule."""

    @pytest.fixture
    def aggregator(self):
        return ClusterAggregator()

    @pytest.fixture
    def residents(self, records):
        return [
            records.resident(mrn="MRN1", name="Jane Doe", unit="A"),
            records.resident(mrn="MRN2", name="John Roe", unit="A"),
            records.resident(mrn="MRN3", name="Ann Poe", unit="A"),
            records.resident(mrn="MRN4", name="Bob Moe", unit="B"),
        ]

    def test_single_resident_is_not_a_cluster(self, aggregator, records, residents, now):
        snapshot = records.snapshot(
            residents=residents,
            abts=[
                records.abt(id="abt1", mrn="MRN1", indication="Pneumonia"),
                records.abt(id="abt2", mrn="MRN1", indication="Bronchitis"),
            ],
        )
        assert aggregator.evaluate(snapshot, EvaluationContext(now=now)) == []

    def test_two_residents_same_unit(self, aggregator, records, residents, now):
        snapshot = records.snapshot(
            residents=residents,
            abts=[
                records.abt(id="abt1", mrn="MRN1", indication="Pneumonia"),
                records.abt(id="abt2", mrn="MRN2", indication="URI"),
            ],
        )
        candidates = aggregator.evaluate(snapshot, EvaluationContext(now=now))

        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.category == NotificationCategory.OUTBREAK_SUGGESTION
        assert candidate.message == "Possible cluster in Unit A: 2 residents with Respiratory in 96h."
        assert candidate.unit == "A"
        assert candidate.resident_id is None
        assert candidate.scope == "A"
        assert candidate.ref_id.startswith("A_Respiratory_")
        assert {m.resident_id for m in candidate.cluster_details} == {"MRN1", "MRN2"}
        assert candidate.payload["syndrome"] == "Respiratory"
        assert candidate.payload["severity"] == "low"

    def test_different_units_do_not_cluster(self, aggregator, records, residents, now):
        snapshot = records.snapshot(
            residents=residents,
            abts=[
                records.abt(id="abt1", mrn="MRN1", indication="Pneumonia"),
                records.abt(id="abt4", mrn="MRN4", indication="Pneumonia"),
            ],
        )
        assert aggregator.evaluate(snapshot, EvaluationContext(now=now)) == []

    def test_resident_without_unit_excluded(self, aggregator, records, now):
        snapshot = records.snapshot(
            residents=[
                records.resident(mrn="MRN1", unit="A"),
                records.resident(mrn="MRN2", unit=None),
            ],
            abts=[
                records.abt(id="abt1", mrn="MRN1", indication="Pneumonia"),
                records.abt(id="abt2", mrn="MRN2", indication="Pneumonia"),
            ],
        )
        assert aggregator.evaluate(snapshot, EvaluationContext(now=now)) == []

    def test_records_outside_window_excluded(self, aggregator, records, residents, now):
        snapshot = records.snapshot(
            residents=residents,
            abts=[
                records.abt(id="abt1", mrn="MRN1", indication="Pneumonia"),
                records.abt(id="abt2", mrn="MRN2", indication="Pneumonia", created=now - timedelta(hours=97)),
            ],
        )
        assert aggregator.evaluate(snapshot, EvaluationContext(now=now)) == []

    def test_note_tags_join_antibiotic_signals(self, aggregator, records, residents, now):
        snapshot = records.snapshot(
            residents=residents,
            abts=[records.abt(id="abt1", mrn="MRN1", indication="Pneumonia")],
            notes=[
                records.note(id="n2", mrn="MRN2", body="#cough since last night"),
                records.note(id="n3", mrn="MRN3", body="Complains of sore throat"),
            ],
        )
        candidates = aggregator.evaluate(snapshot, EvaluationContext(now=now))

        assert len(candidates) == 1
        assert candidates[0].payload["residentCount"] == 3
        assert candidates[0].payload["severity"] == "medium"
        assert {m.ref_type for m in candidates[0].cluster_details} == {"abt", "note"}

    def test_fever_cluster_from_notes(self, aggregator, records, residents, now):
        snapshot = records.snapshot(
            residents=residents,
            notes=[
                records.note(id="n1", mrn="MRN1", body="#fever 38.4"),
                records.note(id="n2", mrn="MRN2", body="fever overnight"),
            ],
        )
        candidates = aggregator.evaluate(snapshot, EvaluationContext(now=now))
        assert [c.payload["syndrome"] for c in candidates] == ["Fever"]
        # One member per note even when tag and phrase both match
        assert len(candidates[0].cluster_details) == 2

    def test_suppressed_by_recent_unread_suggestion(self, aggregator, records, residents, now):
        snapshot = records.snapshot(
            residents=residents,
            abts=[
                records.abt(id="abt1", mrn="MRN1", indication="Pneumonia"),
                records.abt(id="abt2", mrn="MRN2", indication="Pneumonia"),
            ],
        )
        context = EvaluationContext(
            now=now,
            existing_notifications=[existing_suggestion(now - timedelta(days=1))],
        )
        assert aggregator.evaluate(snapshot, context) == []

    def test_read_suggestion_does_not_suppress(self, aggregator, records, residents, now):
        snapshot = records.snapshot(
            residents=residents,
            abts=[
                records.abt(id="abt1", mrn="MRN1", indication="Pneumonia"),
                records.abt(id="abt2", mrn="MRN2", indication="Pneumonia"),
            ],
        )
        context = EvaluationContext(
            now=now,
            existing_notifications=[
                existing_suggestion(now - timedelta(days=1), status=NotificationStatus.READ),
            ],
        )
        assert len(aggregator.evaluate(snapshot, context)) == 1

    def test_old_suggestion_does_not_suppress(self, aggregator, records, residents, now):
        snapshot = records.snapshot(
            residents=residents,
            abts=[
                records.abt(id="abt1", mrn="MRN1", indication="Pneumonia"),
                records.abt(id="abt2", mrn="MRN2", indication="Pneumonia"),
            ],
        )
        context = EvaluationContext(
            now=now,
            existing_notifications=[existing_suggestion(now - timedelta(days=5))],
        )
        assert len(aggregator.evaluate(snapshot, context)) == 1

    def test_other_syndrome_does_not_suppress(self, aggregator, records, residents, now):
        snapshot = records.snapshot(
            residents=residents,
            abts=[
                records.abt(id="abt1", mrn="MRN1", indication="Pneumonia"),
                records.abt(id="abt2", mrn="MRN2", indication="Pneumonia"),
            ],
        )
        context = EvaluationContext(
            now=now,
            existing_notifications=[existing_suggestion(now - timedelta(days=1), syndrome="GI")],
        )
        assert len(aggregator.evaluate(snapshot, context)) == 1

    def test_min_residents_configurable(self, records, residents, now):
        aggregator = ClusterAggregator(min_residents=3)
        snapshot = records.snapshot(
            residents=residents,
            abts=[
                records.abt(id="abt1", mrn="MRN1", indication="Pneumonia"),
                records.abt(id="abt2", mrn="MRN2", indication="Pneumonia"),
            ],
        )
        assert aggregator.evaluate(snapshot, EvaluationContext(now=now)) == []

    def test_zero_hour_window_is_honoured(self, records, residents, now):
        aggregator = ClusterAggregator(window_hours=0)
        snapshot = records.snapshot(
            residents=residents,
            abts=[
                records.abt(id="abt1", mrn="MRN1", indication="Pneumonia"),
                records.abt(id="abt2", mrn="MRN2", indication="Pneumonia"),
            ],
        )
        assert aggregator.window == timedelta(0)
        assert aggregator.evaluate(snapshot, EvaluationContext(now=now)) == []
