"""
Event aggregation.

Reduces raw order-line events into one sales record per (sku, unit) over a
half-open [start, end) window. Events that fail the minimal shape checks are
dropped, never repaired.
"""

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional, Union

import pandas as pd

from stock_signals.errors import DataUnavailableError, SignalEngineError
from stock_signals.schemas import AggregatedSalesRecord, OrderEvent, SourceStatus
from stock_signals.sources import OrderEventSource
from stock_signals.utils import to_utc_timestamp

logger = logging.getLogger(__name__)

EVENT_COLUMNS = ["event_id", "sku", "unit", "quantity", "occurred_at"]

EventLike = Union[OrderEvent, Mapping[str, Any]]
WindowBound = Union[date, datetime, str]


@dataclass
class AggregationResult:
    """Outcome of aggregating events pulled from an event source."""

    ok: bool
    status: SourceStatus
    records: list[AggregatedSalesRecord] = field(default_factory=list)
    error: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    total_events: int = 0
    dropped_events: int = 0

    @property
    def unique_products(self) -> int:
        return len(self.records)


def _clean_key(value: Any) -> Optional[str]:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    text = str(value).strip()
    return text or None


def _event_row(event: EventLike) -> dict[str, Any]:
    if isinstance(event, OrderEvent):
        row = event.model_dump()
    elif isinstance(event, Mapping):
        row = dict(event)
        # Legacy rows carry the product name under 'strain'.
        if not row.get("sku") and row.get("strain"):
            row["sku"] = row["strain"]
    else:
        raise TypeError(f"Unsupported event type: {type(event).__name__}")

    return {
        "event_id": _clean_key(row.get("event_id")),
        "sku": _clean_key(row.get("sku")),
        "unit": _clean_key(row.get("unit")),
        "quantity": row.get("quantity"),
        "occurred_at": to_utc_timestamp(row.get("occurred_at")),
    }


def events_to_frame(events: Iterable[EventLike]) -> pd.DataFrame:
    """Builds a DataFrame with EVENT_COLUMNS from events or raw mappings."""
    rows = [_event_row(event) for event in events]
    df = pd.DataFrame(rows, columns=EVENT_COLUMNS)
    df["quantity"] = pd.to_numeric(df["quantity"], errors="coerce")
    df["occurred_at"] = pd.to_datetime(df["occurred_at"], utc=True)
    return df


def _window(start: WindowBound, end: WindowBound) -> tuple[pd.Timestamp, pd.Timestamp]:
    start_ts = to_utc_timestamp(start)
    end_ts = to_utc_timestamp(end)
    if start_ts is None or end_ts is None:
        raise ValueError(f"Invalid aggregation window: {start!r} -> {end!r}")
    if start_ts >= end_ts:
        raise ValueError(f"Window start {start_ts} must be before end {end_ts}")
    return start_ts, end_ts


def _qualifying(df: pd.DataFrame, start: pd.Timestamp, end: pd.Timestamp) -> pd.DataFrame:
    """Applies the shape checks, the window, and event-id de-duplication."""
    quantity = df["quantity"]
    well_formed = (
        df["sku"].notna()
        & df["unit"].notna()
        & df["occurred_at"].notna()
        & quantity.notna()
        & (quantity > 0)
        & (quantity % 1 == 0)
    )
    in_window = (df["occurred_at"] >= start) & (df["occurred_at"] < end)
    valid = df[well_formed & in_window].copy()

    # The same event id must never be counted twice.
    duplicate = valid["event_id"].notna() & valid.duplicated(subset="event_id", keep="first")
    valid = valid[~duplicate]

    valid["quantity"] = valid["quantity"].astype(int)
    return valid


def aggregate_events(
    events: Iterable[EventLike], start: WindowBound, end: WindowBound
) -> list[AggregatedSalesRecord]:
    """
    Aggregates order events into one record per (sku, unit).

    The window is [start, end): an event at exactly `start` is counted, one at
    exactly `end` is not. Output is sorted by (sku, unit), so the same input
    always yields the same list.
    """
    start_ts, end_ts = _window(start, end)
    valid = _qualifying(events_to_frame(events), start_ts, end_ts)
    if valid.empty:
        return []

    grouped = (
        valid.groupby(["sku", "unit"], sort=True)
        .agg(
            total_units_sold=("quantity", "sum"),
            order_count=("quantity", "size"),
            first_order_at=("occurred_at", "min"),
            last_order_at=("occurred_at", "max"),
        )
        .reset_index()
    )

    return [
        AggregatedSalesRecord(
            sku=row.sku,
            unit=row.unit,
            total_units_sold=int(row.total_units_sold),
            order_count=int(row.order_count),
            first_order_at=row.first_order_at.to_pydatetime(),
            last_order_at=row.last_order_at.to_pydatetime(),
        )
        for row in grouped.itertuples(index=False)
    ]


def aggregate_order_events(
    source: OrderEventSource, start: WindowBound, end: WindowBound
) -> AggregationResult:
    """
    Pulls events from `source` and aggregates them.

    A source that is down yields ok=False with status UNAVAILABLE (or ERROR),
    never an empty aggregation that would read as "no sales".
    """
    start_ts, end_ts = _window(start, end)
    window = {"start": start_ts.to_pydatetime(), "end": end_ts.to_pydatetime()}

    try:
        result = source.query_events(window["start"], window["end"])
    except (DataUnavailableError, TimeoutError) as e:
        logger.warning(f"⚠️ Order event source unavailable: {e}")
        return AggregationResult(
            ok=False, status=SourceStatus.UNAVAILABLE, error=str(e), **window
        )
    except (SignalEngineError, OSError, ValueError) as e:
        logger.error(f"❌ Order event source failed: {e}")
        return AggregationResult(ok=False, status=SourceStatus.ERROR, error=str(e), **window)

    if not result.ok:
        logger.warning(f"⚠️ Order events not available ({result.status.value}): {result.error}")
        return AggregationResult(ok=False, status=result.status, error=result.error, **window)

    events = result.data
    usable = [event for event in events if isinstance(event, (OrderEvent, Mapping))]
    if len(usable) < len(events):
        logger.warning(
            f"⚠️ Skipping {len(events) - len(usable)} order event(s) that are not records."
        )
    records = aggregate_events(usable, start_ts, end_ts)
    counted = sum(record.order_count for record in records)

    logger.info(
        f"Aggregated {len(events)} order events into {len(records)} product summaries"
    )
    return AggregationResult(
        ok=True,
        status=SourceStatus.OK,
        records=records,
        total_events=len(events),
        dropped_events=len(events) - counted,
        **window,
    )
