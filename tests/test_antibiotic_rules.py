"""Tests for antibiotic course rules.

Covers:
- Respiratory/GI indication line-list recommendation
- Duration / end-date review
- UTI antibiotic + urinary device linkage
"""

from datetime import timedelta

import pytest

from common.notification_store import NotificationCategory, RunWatermark
from detection_src.rules import (
    AntibioticReviewRule,
    AntibioticSyndromeRule,
    EvaluationContext,
    UTIDeviceLinkRule,
)


@pytest.fixture
def context(now):
    return EvaluationContext(now=now)


@pytest.fixture
def later_context(now):
    """Context for a run after a previous run one hour ago."""
    return EvaluationContext(
        now=now,
        watermark=RunWatermark(last_run_at=now - timedelta(hours=1), last_seen_event_at=now - timedelta(hours=1), version=1),
    )


class TestAntibioticSyndromeRule:
    """abt_syndrome_rule."""

    @pytest.fixture
    def rule(self):
        return AntibioticSyndromeRule()

    def test_respiratory_indication(self, rule, records, context):
        snapshot = records.snapshot(
            residents=[records.resident()],
            abts=[records.abt(indication="Community acquired pneumonia")],
        )
        candidates = rule.evaluate(snapshot, context)

        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.category == NotificationCategory.LINE_LIST_REVIEW
        assert candidate.message == (
            "Jane Doe started on antibiotic for Respiratory indication. Consider line list inclusion."
        )
        assert candidate.ref_id == "abt1"
        assert candidate.resident_id == "MRN1"
        assert candidate.unit == "A"
        assert candidate.action == "add_to_line_list"
        assert candidate.payload["symptomClass"] == "resp"
        assert candidate.payload["sourceEventId"] == "abt1"
        assert candidate.payload["residentId"] == "MRN1"

    def test_gi_indication_from_syndrome_category(self, rule, records, context):
        snapshot = records.snapshot(
            residents=[records.resident()],
            abts=[records.abt(indication=None, syndrome_category="GI")],
        )
        candidates = rule.evaluate(snapshot, context)
        assert "GI indication" in candidates[0].message
        assert candidates[0].payload["symptomClass"] == "gi"

    def test_respiratory_wins_over_gi(self, rule, records, context):
        snapshot = records.snapshot(
            residents=[records.resident()],
            abts=[records.abt(indication="Pneumonia with diarrhea")],
        )
        candidates = rule.evaluate(snapshot, context)
        assert len(candidates) == 1
        assert "Respiratory" in candidates[0].message

    def test_unrelated_indication(self, rule, records, context):
        snapshot = records.snapshot(abts=[records.abt(indication="Cellulitis")])
        assert rule.evaluate(snapshot, context) == []

    def test_unknown_resident_name(self, rule, records, context):
        snapshot = records.snapshot(abts=[records.abt(mrn="GHOST")])
        candidates = rule.evaluate(snapshot, context)
        assert candidates[0].message.startswith("Unknown Resident started on antibiotic")
        assert candidates[0].resident_id == "GHOST"

    def test_missing_resident_ref_skipped(self, rule, records, context):
        abt = records.abt()
        abt["residentRef"] = None
        snapshot = records.snapshot(abts=[abt])
        assert rule.evaluate(snapshot, context) == []

    def test_completed_course_changed_since_last_run(self, rule, records, now, later_context):
        snapshot = records.snapshot(
            abts=[records.abt(status="completed", created=now - timedelta(days=5), updated=now - timedelta(minutes=10))],
        )
        assert len(rule.evaluate(snapshot, later_context)) == 1

    def test_completed_unchanged_course_skipped(self, rule, records, now, later_context):
        snapshot = records.snapshot(
            abts=[records.abt(status="completed", created=now - timedelta(days=5))],
        )
        assert rule.evaluate(snapshot, later_context) == []


class TestAntibioticReviewRule:
    """abt_review_rule."""

    @pytest.fixture
    def rule(self):
        return AntibioticReviewRule()

    def test_long_course_without_end_date(self, rule, records, now, context):
        snapshot = records.snapshot(
            residents=[records.resident()],
            abts=[records.abt(indication="Cellulitis", start=now - timedelta(days=8))],
        )
        candidates = rule.evaluate(snapshot, context)

        assert len(candidates) == 1
        assert candidates[0].message == (
            "Jane Doe is on Ceftriaxone. Active for > 7 days with no end date."
        )
        assert candidates[0].refs == {"abtId": "abt1"}

    def test_short_course_not_flagged(self, rule, records, now, context):
        snapshot = records.snapshot(abts=[records.abt(start=now - timedelta(days=6))])
        assert rule.evaluate(snapshot, context) == []

    def test_end_date_passed(self, rule, records, now, context):
        snapshot = records.snapshot(
            abts=[records.abt(start=now - timedelta(days=3), end="2024-10-01")],
        )
        candidates = rule.evaluate(snapshot, context)
        assert candidates[0].message.endswith("End date has passed.")

    def test_future_end_date(self, rule, records, now, context):
        snapshot = records.snapshot(
            abts=[records.abt(start=now - timedelta(days=10), end=now + timedelta(days=2))],
        )
        assert rule.evaluate(snapshot, context) == []

    def test_inactive_course_ignored(self, rule, records, now, context):
        snapshot = records.snapshot(
            abts=[records.abt(status="completed", start=now - timedelta(days=10))],
        )
        assert rule.evaluate(snapshot, context) == []

    def test_missing_start_date(self, rule, records, context):
        abt = records.abt()
        abt["startDate"] = "not a date"
        assert rule.evaluate(records.snapshot(abts=[abt]), context) == []

    def test_zero_day_review_threshold(self, records, context):
        rule = AntibioticReviewRule(review_after_days=0)
        snapshot = records.snapshot(residents=[records.resident()], abts=[records.abt(indication="Cellulitis")])
        candidates = rule.evaluate(snapshot, context)

        assert len(candidates) == 1
        assert candidates[0].message.endswith("Active for > 0 days with no end date.")


class TestUTIDeviceLinkRule:
    """uti_device_link_rule."""

    @pytest.fixture
    def rule(self):
        return UTIDeviceLinkRule()

    def test_urinary_abt_with_device_infection(self, rule, records, now, context):
        snapshot = records.snapshot(
            residents=[records.resident()],
            abts=[records.abt(indication="UTI")],
            infections=[records.infection(id="ip7", category="CAUTI", notes="Foley in place")],
        )
        candidates = rule.evaluate(snapshot, context)

        assert len(candidates) == 1
        assert candidates[0].category == NotificationCategory.DEVICE_LINK
        assert candidates[0].ref_id == "abt1_ip7"
        assert candidates[0].refs == {"abtId": "abt1", "ipId": "ip7"}

    def test_only_first_matching_infection(self, rule, records, now, context):
        snapshot = records.snapshot(
            abts=[records.abt(indication="Urinary tract infection")],
            infections=[
                records.infection(id="ip2", notes="catheter", created=now - timedelta(days=1)),
                records.infection(id="ip1", notes="foley", created=now - timedelta(days=3)),
            ],
        )
        candidates = rule.evaluate(snapshot, context)
        assert [c.ref_id for c in candidates] == ["abt1_ip1"]

    def test_no_device_mention(self, rule, records, context):
        snapshot = records.snapshot(
            abts=[records.abt(indication="UTI")],
            infections=[records.infection(notes="no lines")],
        )
        assert rule.evaluate(snapshot, context) == []

    def test_other_residents_device_ignored(self, rule, records, context):
        snapshot = records.snapshot(
            abts=[records.abt(indication="UTI")],
            infections=[records.infection(mrn="MRN2", notes="foley")],
        )
        assert rule.evaluate(snapshot, context) == []

    def test_non_urinary_indication(self, rule, records, context):
        snapshot = records.snapshot(
            abts=[records.abt(indication="Pneumonia")],
            infections=[records.infection(notes="foley")],
        )
        assert rule.evaluate(snapshot, context) == []
