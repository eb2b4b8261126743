"""
Snapshot comparison.

Per-product deltas between two enriched snapshots, snapshot-level metric
deltas, and the velocity delta used by the signal rules. A missing prior
value always yields None, never a zero that would look like "no change".
"""

from collections.abc import Iterable, Sequence
from typing import Optional, Union

from stock_signals import settings
from stock_signals.schemas import (
    DeltaDirection,
    DeltaRecord,
    DeltaReport,
    DeltaSummary,
    EnrichedItem,
    MetricDelta,
    ProductKey,
    Snapshot,
    VelocityDelta,
    VelocityPattern,
    VelocityRecord,
)

SnapshotLike = Union[Snapshot, Sequence[EnrichedItem]]
VelocityLike = Union[VelocityRecord, float, int, None]


def _items(snapshot: Optional[SnapshotLike]) -> list[EnrichedItem]:
    if snapshot is None:
        return []
    if isinstance(snapshot, Snapshot):
        return list(snapshot.items)
    return list(snapshot)


def _velocity(value: VelocityLike) -> Optional[float]:
    """The numeric velocity, or None when it is absent."""
    if isinstance(value, VelocityRecord):
        return value.daily_velocity if value.is_available else None
    return value


def _percent(delta: float, base: Optional[float]) -> Optional[float]:
    if base is None or base == 0:
        return None
    return delta / base * 100


def _delta_record(current: EnrichedItem, previous: Optional[EnrichedItem]) -> DeltaRecord:
    current_qty = current.item.quantity_on_hand
    current_velocity = _velocity(current.velocity)

    if previous is None:
        return DeltaRecord(
            sku=current.item.sku,
            unit=current.item.unit,
            has_previous=False,
            current_qty=current_qty,
            previous_qty=0,
            quantity_delta=current_qty,
            current_velocity=current_velocity,
        )

    previous_qty = previous.item.quantity_on_hand
    quantity_delta = current_qty - previous_qty
    previous_velocity = _velocity(previous.velocity)

    velocity_delta = None
    velocity_delta_percent = None
    if current_velocity is not None and previous_velocity is not None:
        velocity_delta = current_velocity - previous_velocity
        velocity_delta_percent = _percent(velocity_delta, previous_velocity)

    threshold = settings.VELOCITY_CHANGE_PERCENT
    return DeltaRecord(
        sku=current.item.sku,
        unit=current.item.unit,
        has_previous=True,
        current_qty=current_qty,
        previous_qty=previous_qty,
        quantity_delta=quantity_delta,
        quantity_delta_percent=_percent(quantity_delta, previous_qty),
        current_velocity=current_velocity,
        previous_velocity=previous_velocity,
        velocity_delta=velocity_delta,
        velocity_delta_percent=velocity_delta_percent,
        has_accelerated=velocity_delta_percent is not None and velocity_delta_percent > threshold,
        has_decelerated=velocity_delta_percent is not None and velocity_delta_percent < -threshold,
    )


def summarize_deltas(deltas: Iterable[DeltaRecord]) -> DeltaSummary:
    deltas = list(deltas)
    return DeltaSummary(
        total_items=len(deltas),
        accelerating=sum(d.has_accelerated for d in deltas),
        decelerating=sum(d.has_decelerated for d in deltas),
        depleting=sum(d.has_previous and d.quantity_delta < 0 for d in deltas),
        restocked=sum(d.has_previous and d.quantity_delta > 0 for d in deltas),
        new_items=sum(not d.has_previous for d in deltas),
    )


def compute_snapshot_delta(
    current: SnapshotLike, previous: Optional[SnapshotLike] = None
) -> DeltaReport:
    """
    One DeltaRecord per product in `current`, in the order they appear.

    Products that only exist in `previous` are not reported.
    """
    previous_by_key: dict[ProductKey, EnrichedItem] = {
        entry.key: entry for entry in _items(previous)
    }
    deltas = [_delta_record(entry, previous_by_key.get(entry.key)) for entry in _items(current)]

    return DeltaReport(
        has_comparison=previous is not None,
        previous_snapshot_id=previous.snapshot_id if isinstance(previous, Snapshot) else None,
        deltas=deltas,
        summary=summarize_deltas(deltas),
    )


def compute_metric_delta(current: Optional[float], previous: Optional[float]) -> MetricDelta:
    """
    Absolute and percent change of one metric.

    Direction is FLAT while the percent change stays within the flat
    threshold; with a zero previous value only the sign of the change counts.
    """
    if current is None:
        return MetricDelta(direction=DeltaDirection.UNKNOWN, has_comparison=False)
    if previous is None:
        return MetricDelta(
            direction=DeltaDirection.NO_PRIOR, has_comparison=False, current=current
        )

    absolute = current - previous
    percent = _percent(absolute, previous)
    flat = settings.FLAT_CHANGE_PERCENT

    if percent is not None:
        if percent > flat:
            direction = DeltaDirection.UP
        elif percent < -flat:
            direction = DeltaDirection.DOWN
        else:
            direction = DeltaDirection.FLAT
    elif absolute > 0:
        direction = DeltaDirection.UP
    elif absolute < 0:
        direction = DeltaDirection.DOWN
    else:
        direction = DeltaDirection.FLAT

    return MetricDelta(
        absolute=round(absolute, 2),
        percent=round(percent, 2) if percent is not None else None,
        direction=direction,
        has_comparison=True,
        current=current,
        previous=previous,
    )


def compute_metric_deltas(
    current: Snapshot,
    previous: Optional[Snapshot],
    metrics: Optional[Iterable[str]] = None,
) -> dict[str, MetricDelta]:
    names = list(metrics) if metrics is not None else list(current.metrics)
    previous_metrics = previous.metrics if previous is not None else {}
    return {
        name: compute_metric_delta(current.metrics.get(name), previous_metrics.get(name))
        for name in names
    }


def compute_velocity_delta(current: VelocityLike, previous: VelocityLike) -> VelocityDelta:
    """Classifies the change in daily velocity against the prior period."""
    current_velocity = _velocity(current)
    previous_velocity = _velocity(previous)

    if current_velocity is None or previous_velocity is None or previous_velocity == 0:
        return VelocityDelta(
            pattern=VelocityPattern.UNKNOWN,
            message="Not enough data to compare sales velocity",
        )

    absolute = current_velocity - previous_velocity
    percent = absolute / previous_velocity * 100
    threshold = settings.VELOCITY_CHANGE_PERCENT

    if percent > threshold:
        pattern = VelocityPattern.ACCELERATING
        message = f"Sales velocity up {percent:.1f}% vs prior period"
    elif percent < -threshold:
        pattern = VelocityPattern.DECELERATING
        message = f"Sales velocity down {abs(percent):.1f}% vs prior period"
    else:
        pattern = VelocityPattern.STABLE
        message = "Sales velocity stable vs prior period"

    return VelocityDelta(pattern=pattern, absolute=absolute, percent=percent, message=message)
