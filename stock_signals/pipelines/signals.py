import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Optional

from pydantic import ValidationError

from stock_signals import settings
from stock_signals.analytics.actions import build_proofs, frame_actions
from stock_signals.analytics.deltas import compute_metric_deltas, compute_snapshot_delta
from stock_signals.analytics.detector import detect_all_signals, summarize_signals
from stock_signals.analytics.snapshots import (
    TRACKED_METRICS,
    build_history_contexts,
    build_snapshot,
)
from stock_signals.analytics.trends import detect_trend
from stock_signals.analytics.velocity import EnrichmentResult, enrich_from_source
from stock_signals.errors import SnapshotConflictError
from stock_signals.pipeline import DataPipeline
from stock_signals.schemas import Snapshot, SignalReport, VelocitySource
from stock_signals.snapshot_store import SnapshotStore
from stock_signals.sources import (
    InventoryResolution,
    InventoryStore,
    OrderEventSource,
    resolve_inventory,
)

logger = logging.getLogger(__name__)


@dataclass
class SignalInputs:
    inventory: InventoryResolution
    enrichment: EnrichmentResult
    history: list[Snapshot] = field(default_factory=list)


class SignalPipeline(DataPipeline):
    def __init__(
        self,
        event_source: OrderEventSource,
        inventory_store: InventoryStore,
        snapshot_store: SnapshotStore,
        store_id: Optional[str] = None,
        as_of: Optional[date] = None,
        observation_days: Optional[int] = None,
        test_mode: bool = False,
    ):
        super().__init__("signals", sources=["inventory", "orders", "history"], test_mode=test_mode)
        self.event_source = event_source
        self.inventory_store = inventory_store
        self.snapshot_store = snapshot_store
        self.store_id = store_id or settings.STORE_ID
        self.as_of = as_of or date.today()
        self.observation_days = (
            settings.OBSERVATION_WINDOW_DAYS if observation_days is None else observation_days
        )
        if self.observation_days <= 0:
            raise ValueError(f"observation_days must be positive, got {self.observation_days}")
        self.timeframe = settings.SNAPSHOT_TIMEFRAME
        # Snapshots are keyed to the start of the reporting day (UTC).
        self.captured_at = datetime.combine(self.as_of, time.min, tzinfo=timezone.utc)
        self.snapshot: Optional[Snapshot] = None
        self.inputs: Optional[SignalInputs] = None

    def extract(self) -> SignalInputs | None:
        logger.info("--- Resolving Inventory ---")
        inventory = resolve_inventory(self.inventory_store, self.snapshot_store, self.store_id)
        self.status_summary["inventory"] = inventory.origin
        if inventory.origin == "live":
            self.status_summary["inventory"] = getattr(self.inventory_store, "report_date", None) or "live"
        if not inventory.ok:
            logger.error(f"❌ No inventory available: {inventory.error}")
            return None
        logger.info(f"  > {len(inventory.items)} items ({inventory.origin})")

        logger.info(f"\n--- Computing Velocity ({self.observation_days}-day window) ---")
        enrichment = enrich_from_source(
            inventory.items, self.event_source, self.as_of, self.observation_days
        )
        self.status_summary["orders"] = enrichment.velocity_source.value
        if enrichment.has_velocity:
            self.status_summary["orders"] = getattr(self.event_source, "report_date", None) or "live"

        history = self.snapshot_store.history(
            self.store_id,
            count=settings.TREND_WINDOW_MAX,
            timeframe=self.timeframe,
            before=self.captured_at,
        )
        self.status_summary["history"] = history[0].captured_at if history else None
        logger.info(f"  > {len(history)} prior snapshot(s) found")

        self.inputs = SignalInputs(inventory=inventory, enrichment=enrichment, history=history)
        return self.inputs

    def transform(self, raw_data: SignalInputs) -> SignalReport | None:
        logger.info("\n--- Detecting Signals ---")
        generated_at = datetime.now(timezone.utc)
        history = raw_data.history
        previous = history[0] if history else None

        snapshot = build_snapshot(
            self.store_id, raw_data.enrichment.items, self.captured_at, self.timeframe
        )
        deltas = compute_snapshot_delta(snapshot, previous)
        contexts = build_history_contexts(snapshot.items, history)
        signals = detect_all_signals(snapshot.items, contexts)
        actions = frame_actions(build_proofs(signals, generated_at))

        series = [snapshot, *history]
        metric_trends = {
            metric: detect_trend(series, f"metrics.{metric}") for metric in TRACKED_METRICS
        }

        summary = summarize_signals(signals)
        logger.info(
            f"  > {summary['total']} signals "
            f"({summary['by_severity']['critical']} critical), {len(actions)} actions"
        )

        try:
            report = SignalReport(
                store_id=self.store_id,
                as_of=self.as_of,
                generated_at=generated_at,
                velocity_source=raw_data.enrichment.velocity_source,
                inventory_origin=raw_data.inventory.origin,
                snapshot_id=snapshot.snapshot_id,
                velocity=[entry.velocity for entry in snapshot.items],
                deltas=deltas,
                metric_deltas=compute_metric_deltas(snapshot, previous, TRACKED_METRICS),
                metric_trends=metric_trends,
                signals=signals,
                actions=actions,
                signal_summary=summary,
            )
        except ValidationError as e:
            logger.error("❌ Report validation failed!")
            logger.error(e)
            return None

        self.snapshot = snapshot
        return report

    def save_snapshot(self) -> bool:
        """
        Appends the run's snapshot to history. Runs without live velocity or
        live inventory are not recorded, so history only holds measured data.
        """
        if self.snapshot is None or self.inputs is None:
            return False
        if self.inputs.enrichment.velocity_source != VelocitySource.EVENTS:
            logger.warning("⚠️ Velocity not available. Snapshot not saved.")
            return False
        if self.inputs.inventory.origin != "live":
            logger.warning("⚠️ Inventory came from a fallback. Snapshot not saved.")
            return False

        try:
            self.snapshot_store.save(self.snapshot)
        except SnapshotConflictError as e:
            logger.warning(f"⚠️ {e}. Keeping the existing snapshot.")
            return False
        return True

    def load(self, report: SignalReport):
        self.save_snapshot()
        super().load(report)
