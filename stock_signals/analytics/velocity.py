"""
Velocity enrichment.

Joins current inventory with aggregated sales to produce a daily velocity and
a linear depletion estimate per product. Confidence is driven by order count
alone; a big number from two orders is still low confidence.
"""

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from stock_signals import settings
from stock_signals.analytics.aggregation import AggregationResult, aggregate_order_events
from stock_signals.schemas import (
    AggregatedSalesRecord,
    Confidence,
    EnrichedItem,
    InventoryItem,
    SourceStatus,
    VelocityRecord,
    VelocitySource,
)
from stock_signals.sources import OrderEventSource
from stock_signals.utils import to_utc_timestamp

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentResult:
    items: list[EnrichedItem]
    velocity_source: VelocitySource
    start: datetime
    end: datetime
    error: Optional[str] = None
    stats: dict[str, int] = field(default_factory=dict)
    aggregation: Optional[AggregationResult] = None

    @property
    def has_velocity(self) -> bool:
        return self.velocity_source == VelocitySource.EVENTS


def classify_confidence(order_count: int, units_sold: Optional[int] = None) -> Confidence:
    """Confidence tier from sample size. Zero sales is always NONE."""
    if order_count <= 0 or units_sold == 0:
        return Confidence.NONE
    if order_count >= settings.CONFIDENCE_HIGH_ORDERS:
        return Confidence.HIGH
    if order_count >= settings.CONFIDENCE_MEDIUM_ORDERS:
        return Confidence.MEDIUM
    return Confidence.LOW


def compute_days_until_depletion(
    quantity_on_hand: int, daily_velocity: Optional[float]
) -> Optional[int]:
    """Whole days until stock runs out at the current rate. None if not moving."""
    if daily_velocity is None or daily_velocity <= 0:
        return None
    return math.ceil(quantity_on_hand / daily_velocity)


def _velocity_record(
    item: InventoryItem, sale: Optional[AggregatedSalesRecord], observation_days: int
) -> VelocityRecord:
    units_sold = sale.total_units_sold if sale else 0
    order_count = sale.order_count if sale else 0
    daily_velocity = units_sold / observation_days

    return VelocityRecord(
        sku=item.sku,
        unit=item.unit,
        units_sold=units_sold,
        order_count=order_count,
        daily_velocity=daily_velocity,
        days_until_depletion=compute_days_until_depletion(
            item.quantity_on_hand, daily_velocity
        ),
        confidence=classify_confidence(order_count, units_sold),
        observation_days=observation_days,
        first_order_at=sale.first_order_at if sale else None,
        last_order_at=sale.last_order_at if sale else None,
        source=VelocitySource.EVENTS,
    )


def mark_velocity_absent(
    items: Iterable[InventoryItem],
    source: VelocitySource,
    observation_days: Optional[int] = None,
) -> list[EnrichedItem]:
    """Tags every item with an absent velocity. Absent is not zero."""
    if source == VelocitySource.EVENTS:
        raise ValueError("mark_velocity_absent needs an unavailable or error source")

    days = settings.OBSERVATION_WINDOW_DAYS if observation_days is None else observation_days
    return [
        EnrichedItem(
            item=item,
            velocity=VelocityRecord(
                sku=item.sku,
                unit=item.unit,
                observation_days=days,
                confidence=Confidence.NONE,
                source=source,
            ),
        )
        for item in items
    ]


def enrich_inventory(
    items: Iterable[InventoryItem],
    sales: Iterable[AggregatedSalesRecord],
    observation_days: int = 30,
    source: VelocitySource = VelocitySource.EVENTS,
) -> list[EnrichedItem]:
    """
    Produces one EnrichedItem per inventory item.

    Items without sales in the window get velocity 0, no depletion estimate
    and NONE confidence. Sales for products not in inventory are ignored.
    """
    if observation_days <= 0:
        raise ValueError(f"observation_days must be positive, got {observation_days}")
    if source != VelocitySource.EVENTS:
        return mark_velocity_absent(items, source, observation_days)

    sales_by_key = {record.key: record for record in sales}
    return [
        EnrichedItem(
            item=item,
            velocity=_velocity_record(item, sales_by_key.get(item.key), observation_days),
        )
        for item in items
    ]


def velocity_window(
    as_of: Union[date, datetime], observation_days: int
) -> tuple[datetime, datetime]:
    """
    The [start, end) window ending at `as_of`.

    A plain date means "through the end of that day", so the window ends at
    the following UTC midnight.
    """
    if isinstance(as_of, datetime):
        end = to_utc_timestamp(as_of).to_pydatetime()
    else:
        end = datetime.combine(as_of + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return end - timedelta(days=observation_days), end


def _stats(enriched: Sequence[EnrichedItem]) -> dict[str, int]:
    with_velocity = sum(
        1 for entry in enriched if (entry.velocity.daily_velocity or 0) > 0
    )
    return {
        "total_items": len(enriched),
        "items_with_velocity": with_velocity,
        "items_without_velocity": len(enriched) - with_velocity,
    }


def enrich_from_source(
    items: Sequence[InventoryItem],
    event_source: OrderEventSource,
    as_of: Union[date, datetime],
    observation_days: Optional[int] = None,
) -> EnrichmentResult:
    """Aggregates live events over the observation window and enriches `items`."""
    days = settings.OBSERVATION_WINDOW_DAYS if observation_days is None else observation_days
    if days <= 0:
        raise ValueError(f"observation_days must be positive, got {days}")

    start, end = velocity_window(as_of, days)
    aggregation = aggregate_order_events(event_source, start, end)

    if not aggregation.ok:
        source = (
            VelocitySource.ERROR
            if aggregation.status == SourceStatus.ERROR
            else VelocitySource.UNAVAILABLE
        )
        enriched = mark_velocity_absent(items, source, days)
        logger.warning(
            f"⚠️ Velocity {source.value} for {len(enriched)} items: {aggregation.error}"
        )
        return EnrichmentResult(
            items=enriched,
            velocity_source=source,
            start=start,
            end=end,
            error=aggregation.error,
            stats=_stats(enriched),
            aggregation=aggregation,
        )

    enriched = enrich_inventory(items, aggregation.records, days)
    stats = _stats(enriched)
    logger.info(
        f"📈 Velocity computed for {stats['total_items']} items "
        f"({stats['items_with_velocity']} moving) over {days} days"
    )
    return EnrichmentResult(
        items=enriched,
        velocity_source=VelocitySource.EVENTS,
        start=start,
        end=end,
        stats=stats,
        aggregation=aggregation,
    )


# --- Rankings ---


def top_movers(items: Iterable[EnrichedItem], limit: int = 10) -> list[EnrichedItem]:
    moving = [e for e in items if (e.velocity.daily_velocity or 0) > 0]
    moving.sort(key=lambda e: (-e.velocity.daily_velocity, e.key.sku, e.key.unit))
    return moving[:limit]


def slow_movers(
    items: Iterable[EnrichedItem], max_velocity: Optional[float] = None
) -> list[EnrichedItem]:
    """Stocked items selling at or below `max_velocity`, largest stock first."""
    ceiling = settings.SLOW_MOVER_MAX_VELOCITY if max_velocity is None else max_velocity
    slow = [
        e
        for e in items
        if e.velocity.is_available
        and e.velocity.daily_velocity <= ceiling
        and e.item.quantity_on_hand > 0
    ]
    slow.sort(key=lambda e: -e.item.quantity_on_hand)
    return slow


def depletion_risks(
    items: Iterable[EnrichedItem],
    max_days: Optional[int] = None,
    min_confidence: Confidence = Confidence.LOW,
) -> list[EnrichedItem]:
    """Items running out within `max_days`, soonest first."""
    horizon = settings.DEPLETION_RISK_MAX_DAYS if max_days is None else max_days
    floor = max(min_confidence.level, Confidence.LOW.level)
    at_risk = [
        e
        for e in items
        if e.velocity.days_until_depletion is not None
        and e.velocity.days_until_depletion <= horizon
        and e.velocity.confidence.level >= floor
    ]
    at_risk.sort(key=lambda e: e.velocity.days_until_depletion)
    return at_risk
