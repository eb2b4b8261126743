"""
Trend detection over snapshot history.

Rule-based and deliberately coarse: at least three data points, at most the
five most recent, and a 75% majority of consecutive moves in one direction.
"""

import math
from collections.abc import Sequence
from typing import Any, Optional

import pandas as pd

from stock_signals import settings
from stock_signals.schemas import TrendDirection, TrendResult
from stock_signals.utils import get_nested_value


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def metric_window(history: Sequence[Any], metric_path: str) -> list[float]:
    """The most recent non-null values of `metric_path`, newest first."""
    values = []
    for snapshot in history:
        value = get_nested_value(snapshot, metric_path)
        if _is_number(value):
            values.append(float(value))
        if len(values) == settings.TREND_WINDOW_MAX:
            break
    return values


def _classify(values: list[float]) -> TrendResult:
    """Classifies a newest-first window of values."""
    if len(values) < settings.TREND_MIN_SNAPSHOTS:
        return TrendResult(
            trend=TrendDirection.INSUFFICIENT_DATA,
            confidence=None,
            snapshot_count=len(values),
            values=values,
        )

    # values[i] is newer than values[i + 1]
    deltas = [values[i] - values[i + 1] for i in range(len(values) - 1)]
    total = len(deltas)
    up = sum(1 for d in deltas if d > 0)
    down = sum(1 for d in deltas if d < 0)
    flat = total - up - down

    consistency = settings.TREND_CONSISTENCY_THRESHOLD
    if up >= total * consistency:
        trend, winning = TrendDirection.INCREASING, up
    elif down >= total * consistency:
        trend, winning = TrendDirection.DECREASING, down
    elif flat >= total * consistency:
        trend, winning = TrendDirection.STABLE, flat
    else:
        trend, winning = TrendDirection.NO_CLEAR_TREND, max(up, down, flat)

    return TrendResult(
        trend=trend,
        confidence=round(winning / total, 2),
        snapshot_count=len(values),
        values=values,
    )


def detect_trend(history: Sequence[Any], metric_path: str) -> TrendResult:
    """
    Trend of one metric across snapshot history.

    `history` is ordered newest first; `metric_path` is a dotted path into
    each entry ('metrics.total_units_sold', 'velocity.daily_velocity').
    Entries where the metric is missing are skipped, not treated as zero.
    """
    return _classify(metric_window(history or [], metric_path))


def classify_series(values: Sequence[Optional[float]]) -> TrendResult:
    """Same classification for a plain series ordered oldest to newest."""
    recent = [float(v) for v in reversed(values) if _is_number(v)]
    return _classify(recent[: settings.TREND_WINDOW_MAX])


def compute_velocity_variance(
    history: Sequence[Any], metric_path: str = "velocity.daily_velocity"
) -> Optional[float]:
    """
    Coefficient of variation (sample std / mean, as a percent) over the same
    value window the trend uses. None with too few points or a zero mean.
    """
    values = metric_window(history or [], metric_path)
    if len(values) < settings.TREND_MIN_SNAPSHOTS:
        return None

    series = pd.Series(values)
    mean = series.mean()
    if mean == 0:
        return None
    return round(float(series.std(ddof=1) / mean * 100), 2)
