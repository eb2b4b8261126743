"""
Snapshot building and per-product history.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Optional

from stock_signals.analytics.trends import compute_velocity_variance, detect_trend
from stock_signals.schemas import EnrichedItem, HistoryContext, ProductKey, Snapshot

# Snapshot-level metrics the pipeline compares and trends run over run.
TRACKED_METRICS = (
    "total_units_on_hand",
    "total_units_sold",
    "items_with_velocity",
    "inventory_value",
    "average_margin",
)


def snapshot_id_for(store_id: str, timeframe: str, captured_at: datetime) -> str:
    return f"{store_id}_{timeframe}_{captured_at:%Y%m%d}"


def compute_snapshot_metrics(items: Sequence[EnrichedItem]) -> dict[str, Optional[float]]:
    """Store-level totals. A metric with no underlying data is None."""
    with_velocity = [e for e in items if e.velocity.is_available]
    costed = [e.item for e in items if e.item.unit_cost is not None]
    margins = [e.item.margin for e in items if e.item.margin is not None]

    return {
        "item_count": len(items),
        "total_units_on_hand": sum(e.item.quantity_on_hand for e in items),
        "total_units_sold": (
            sum(e.velocity.units_sold or 0 for e in with_velocity) if with_velocity else None
        ),
        "items_with_velocity": (
            sum(1 for e in with_velocity if e.velocity.daily_velocity > 0)
            if with_velocity
            else None
        ),
        "inventory_value": (
            round(sum(i.quantity_on_hand * i.unit_cost for i in costed), 2) if costed else None
        ),
        "average_margin": round(sum(margins) / len(margins), 2) if margins else None,
    }


def build_snapshot(
    store_id: str,
    items: Iterable[EnrichedItem],
    captured_at: datetime,
    timeframe: str = "daily",
) -> Snapshot:
    items = list(items)
    return Snapshot(
        snapshot_id=snapshot_id_for(store_id, timeframe, captured_at),
        store_id=store_id,
        timeframe=timeframe,
        captured_at=captured_at,
        items=items,
        metrics=compute_snapshot_metrics(items),
    )


def _prior_entries(key: ProductKey, history: Sequence[Snapshot]) -> list[EnrichedItem]:
    entries = []
    for snapshot in history:
        for entry in snapshot.items:
            if entry.key == key:
                entries.append(entry)
                break
    return entries


def build_history_context(item: EnrichedItem, history: Sequence[Snapshot]) -> HistoryContext:
    """
    History for one product from prior snapshots (newest first).

    The current item counts as the newest point for the margin trend and the
    velocity variance.
    """
    prior = _prior_entries(item.key, history)
    if not prior:
        return HistoryContext()

    previous_velocity = prior[0].velocity if prior[0].velocity.is_available else None
    series = [item, *prior]

    return HistoryContext(
        previous_velocity=previous_velocity,
        margin_trend=detect_trend(series, "item.margin"),
        velocity_variance=compute_velocity_variance(series, "velocity.daily_velocity"),
    )


def build_history_contexts(
    items: Iterable[EnrichedItem], history: Sequence[Snapshot]
) -> dict[ProductKey, HistoryContext]:
    return {item.key: build_history_context(item, history) for item in items}
