"""Detection monitor: runs the pipeline against the notification store.

Reads the facility watermark and stored notifications, runs the pipeline
over a snapshot and commits new notifications together with the advanced
watermark. A failed commit leaves the watermark untouched, so the next
trigger simply re-evaluates.
"""

import logging
import sqlite3
import time
from datetime import datetime

from common.notification_store import NotificationStore, WatermarkConflictError

from .cluster import ClusterAggregator
from .config import config
from .keywords import KeywordTables, load_keyword_tables
from .models import RecordSnapshot
from .pipeline import PipelineResult, run_detection_pipeline
from .rules import BaseRule
from .sources import JSONFileSnapshotSource, SnapshotSource

logger = logging.getLogger(__name__)


class DetectionMonitor:
    """Runs the detection pipeline for one facility and persists the outcome."""

    def __init__(
        self,
        facility_id: str | None = None,
        store: NotificationStore | None = None,
        source: SnapshotSource | None = None,
        tables: KeywordTables | None = None,
        rules: list[BaseRule] | None = None,
        aggregator: ClusterAggregator | None = None,
        max_attempts: int | None = None,
    ):
        self.facility_id = facility_id or config.FACILITY_ID
        self.store = store or NotificationStore(db_path=config.NOTIFICATION_DB_PATH)
        if source is None and config.SNAPSHOT_PATH:
            source = JSONFileSnapshotSource(config.SNAPSHOT_PATH)
        self.source = source
        self.tables = tables or load_keyword_tables(config.KEYWORD_TABLES_PATH)
        self.rules = rules
        self.aggregator = aggregator
        self.max_attempts = max_attempts or config.COMMIT_MAX_ATTEMPTS
        self.notifications_created = 0

    def _load_snapshot(self) -> RecordSnapshot:
        if self.source is None:
            raise ValueError("No snapshot given and no snapshot source configured")
        return self.source.get_snapshot(self.facility_id)

    def run_once(
        self,
        snapshot: RecordSnapshot | None = None,
        now: datetime | None = None,
        dry_run: bool = False,
    ) -> PipelineResult:
        """Run a single detection cycle.

        Args:
            snapshot: Snapshot to evaluate (read from the source if None)
            now: Run timestamp (current UTC time if None)
            dry_run: Evaluate but do not commit

        Returns:
            The PipelineResult of the last attempt; `committed` tells whether
            the batch was persisted.
        """
        if snapshot is None:
            snapshot = self._load_snapshot()

        result = None
        for attempt in range(1, self.max_attempts + 1):
            watermark = self.store.get_watermark(self.facility_id)
            existing = self.store.list_notifications(self.facility_id)

            result = run_detection_pipeline(
                snapshot,
                watermark,
                now=now,
                existing_notifications=existing,
                rules=self.rules,
                aggregator=self.aggregator,
                tables=self.tables,
            )
            if result.skipped:
                return result

            if dry_run:
                for notification in result.notifications:
                    logger.info(f"[DRY RUN] Would create {notification.id}: {notification.message}")
                return result

            try:
                commit = self.store.commit_run(
                    self.facility_id,
                    result.notifications,
                    result.watermark,
                    expected_version=watermark.version,
                )
            except WatermarkConflictError as e:
                logger.warning(f"{e}; re-running (attempt {attempt}/{self.max_attempts})")
                continue
            except sqlite3.Error as e:
                logger.error(f"Commit failed for facility {self.facility_id}, watermark not advanced: {e}")
                return result

            result.committed = True
            result.watermark = commit.watermark
            result.inserted_ids = commit.inserted_ids
            self.notifications_created += len(commit.inserted_ids)
            return result

        logger.error(
            f"Giving up on facility {self.facility_id} after {self.max_attempts} "
            f"conflicting commit attempt(s)"
        )
        return result

    def run_continuous(self, interval_seconds: int | None = None) -> None:
        """Run the monitor in a polling loop.

        Args:
            interval_seconds: Seconds between checks (default from config)
        """
        interval = interval_seconds or config.POLL_INTERVAL
        logger.info(f"Starting detection monitor for {self.facility_id} (poll interval: {interval}s)")

        while True:
            try:
                result = self.run_once()
                if result.inserted_ids:
                    logger.info(f"Created {len(result.inserted_ids)} notification(s)")
            except Exception as e:
                logger.exception(f"Error during detection run: {e}")

            time.sleep(interval)
