"""Change gate: decides whether a pipeline run is needed."""

import logging
from dataclasses import dataclass
from datetime import datetime

from common.notification_store import RunWatermark

from .dates import day_bucket
from .models import RecordSnapshot, last_modified

logger = logging.getLogger(__name__)


@dataclass
class GateDecision:
    """Whether to run, and the input high-water mark the run would record."""
    should_run: bool
    current_max_event_time: datetime
    has_new_events: bool = False
    is_new_day: bool = False
    is_first_run: bool = False

    @property
    def reason(self) -> str:
        if self.is_first_run:
            return "first run"
        if self.has_new_events:
            return "new events since last run"
        if self.is_new_day:
            return "new calendar day"
        return "no changes"


def current_max_event_time(snapshot: RecordSnapshot, watermark: RunWatermark) -> datetime:
    """Newest ``updated_at or created_at`` across all records, never below the watermark."""
    newest = watermark.last_seen_event_at
    for record in snapshot.iter_records():
        ts = last_modified(record)
        if ts is not None and ts > newest:
            newest = ts
    return newest


def evaluate_gate(snapshot: RecordSnapshot, watermark: RunWatermark, now: datetime) -> GateDecision:
    """Decide whether the pipeline should run for this snapshot.

    Runs when there is data newer than the watermark, when the UTC day has
    changed since the last run (date-relative rules), or on the first run.
    """
    max_event = current_max_event_time(snapshot, watermark)
    has_new_events = max_event > watermark.last_seen_event_at
    is_new_day = day_bucket(watermark.last_run_at) != day_bucket(now)
    is_first_run = watermark.is_first_run

    decision = GateDecision(
        should_run=has_new_events or is_new_day or is_first_run,
        current_max_event_time=max_event,
        has_new_events=has_new_events,
        is_new_day=is_new_day,
        is_first_run=is_first_run,
    )
    logger.debug(f"Change gate for {snapshot.facility_id}: {decision.reason}")
    return decision
