"""Command-line runner for the Detection & Notification Pipeline.

Usage:
    python -m detection_src.runner --snapshot facility.json --facility F1
    python -m detection_src.runner --snapshot facility.json --dry-run --verbose
    python -m detection_src.runner --snapshot facility.json --daemon
"""

import argparse
import json
import logging
import sys

from common.notification_store import NotificationStore

from .config import config
from .dates import parse_timestamp
from .monitor import DetectionMonitor
from .sources import JSONFileSnapshotSource

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Scan a facility snapshot and create clinical-signal notifications"
    )
    parser.add_argument(
        "--snapshot",
        default=config.SNAPSHOT_PATH,
        help="Path to the facility JSON export (default: SNAPSHOT_PATH)",
    )
    parser.add_argument(
        "--facility",
        default=config.FACILITY_ID,
        help="Facility id (default: FACILITY_ID)",
    )
    parser.add_argument(
        "--db",
        default=config.NOTIFICATION_DB_PATH,
        help="Notification database path (default: NOTIFICATION_DB_PATH)",
    )
    parser.add_argument(
        "--now",
        help="Evaluate as of this ISO timestamp instead of the current time",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Evaluate rules but do not store notifications or advance the watermark",
    )
    parser.add_argument(
        "--daemon",
        action="store_true",
        help="Run continuously at POLL_INTERVAL_SECONDS",
    )
    parser.add_argument(
        "--interval",
        type=int,
        help="Override poll interval in seconds (daemon mode)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if not args.snapshot:
        parser.error("--snapshot is required (or set SNAPSHOT_PATH)")

    now = None
    if args.now:
        now = parse_timestamp(args.now)
        if now is None:
            parser.error(f"Invalid --now timestamp: {args.now}")

    monitor = DetectionMonitor(
        facility_id=args.facility,
        store=NotificationStore(db_path=args.db),
        source=JSONFileSnapshotSource(args.snapshot),
    )

    if args.daemon:
        try:
            monitor.run_continuous(args.interval)
        except KeyboardInterrupt:
            logger.info("Shutting down")
        return 0

    result = monitor.run_once(now=now, dry_run=args.dry_run)
    print(json.dumps(result.summary(), indent=2))

    if result.ran and not args.dry_run and not result.committed:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
