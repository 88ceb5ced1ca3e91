"""Deterministic notification identity and deduplication."""

import logging
from datetime import datetime

from common.notification_store import Notification

from .dates import day_bucket
from .models import AlertCandidate

logger = logging.getLogger(__name__)


def make_notification_id(rule_id: str, scope: str, ref_id: str, bucket: str) -> str:
    """Compose ``{rule_id}_{scope}_{ref_id}_{day_bucket}``."""
    return f"{rule_id}_{scope}_{ref_id}_{bucket}"


def candidate_id(candidate: AlertCandidate, now: datetime) -> str:
    return make_notification_id(candidate.rule_id, candidate.scope, candidate.ref_id, day_bucket(now))


def assign_identities(
    candidates: list[AlertCandidate],
    existing_ids: set[str],
    facility_id: str,
    now: datetime,
) -> list[Notification]:
    """Turn candidates into notifications, dropping ids already stored.

    Dropping is the normal steady-state outcome on unchanged inputs, not an
    error. A candidate whose id appeared earlier in the same batch is also
    dropped.

    Args:
        candidates: Candidates from all rule evaluators
        existing_ids: Ids of every stored notification (any status)
        facility_id: Facility the run belongs to
        now: Run timestamp (day bucket and created_at)

    Returns:
        New notifications in candidate order
    """
    seen = set(existing_ids)
    accepted: list[Notification] = []
    duplicates = 0

    for candidate in candidates:
        notification_id = candidate_id(candidate, now)
        if notification_id in seen:
            duplicates += 1
            continue
        seen.add(notification_id)
        accepted.append(candidate.to_notification(notification_id, facility_id, now))

    if duplicates:
        logger.debug(f"Discarded {duplicates} candidate(s) with existing ids")
    return accepted
