import argparse
import logging
from datetime import date

from stock_signals import settings
from stock_signals.logger import setup_logger
from stock_signals.pipelines.signals import SignalPipeline
from stock_signals.snapshot_store import SnapshotStore
from stock_signals.sources import CsvInventoryStore, CsvOrderEventSource, HttpOrderEventSource

logger = logging.getLogger(__name__)


def build_event_source():
    # The HTTP feed wins when configured; otherwise the latest CSV export.
    if settings.ORDERS_API_URL:
        return HttpOrderEventSource(settings.ORDERS_API_URL)
    return CsvOrderEventSource()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate inventory signals for one store.")
    parser.add_argument("--test", action="store_true", help="Run without posting to the webhook.")
    parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="Report date (YYYY-MM-DD). Defaults to today.",
    )
    parser.add_argument(
        "--days",
        type=int,
        default=settings.OBSERVATION_WINDOW_DAYS,
        help="Velocity observation window in days.",
    )
    parser.add_argument("--store", default=settings.STORE_ID, help="Store identifier.")
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help=f"Delete snapshots older than {settings.SNAPSHOT_RETENTION_DAYS} days first.",
    )
    return parser.parse_args(argv)


def main(argv=None):
    setup_logger()
    args = parse_args(argv)
    if args.days <= 0:
        logger.error("❌ --days must be a positive number of days.")
        return 2

    snapshot_store = SnapshotStore()
    if args.cleanup:
        snapshot_store.cleanup()

    pipeline = SignalPipeline(
        event_source=build_event_source(),
        inventory_store=CsvInventoryStore(),
        snapshot_store=snapshot_store,
        store_id=args.store,
        as_of=args.as_of,
        observation_days=args.days,
        test_mode=args.test,
    )
    report = pipeline.run()
    return 0 if report is not None else 1


if __name__ == "__main__":
    raise SystemExit(main())
