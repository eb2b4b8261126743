"""
Signal detection.

Every rule in SIGNAL_RULES is evaluated for every item; one item can raise
several signals. A rule whose inputs are missing stays silent rather than
guessing.

Signal groups:
- Urgency: stock depletion
- Performance: sales acceleration, deceleration, stagnation
- Health: margin erosion, pricing opportunity
- Risk: aging stock, volatile demand
"""

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Optional, Union

from stock_signals import settings
from stock_signals.analytics.deltas import compute_velocity_delta
from stock_signals.schemas import (
    Confidence,
    EnrichedItem,
    HistoryContext,
    ProductKey,
    Severity,
    Signal,
    SignalAction,
    SignalType,
    TrendDirection,
    VelocityPattern,
)

logger = logging.getLogger(__name__)


def _signal(
    entry: EnrichedItem,
    signal_type: SignalType,
    severity: Severity,
    confidence: Confidence,
    message: str,
    action: SignalAction,
    **evidence,
) -> Signal:
    return Signal(
        sku=entry.item.sku,
        unit=entry.item.unit,
        type=signal_type,
        severity=severity,
        confidence=confidence,
        message=message,
        action=action,
        evidence=evidence,
    )


# --- Rules ---


def _depletion_signal(entry: EnrichedItem, history: HistoryContext) -> Optional[Signal]:
    velocity = entry.velocity
    days = velocity.days_until_depletion
    if not velocity.is_available or days is None or days <= 0:
        return None

    if days <= settings.CRITICAL_DEPLETION_DAYS:
        signal_type, severity, action = (
            SignalType.CRITICAL_DEPLETION,
            Severity.CRITICAL,
            SignalAction.REORDER_IMMEDIATELY,
        )
        message = f"Critical: Only {days} day{'s' if days > 1 else ''} of stock remaining"
    elif days <= settings.URGENT_DEPLETION_DAYS:
        signal_type, severity, action = (
            SignalType.URGENT_REORDER,
            Severity.HIGH,
            SignalAction.REORDER_SOON,
        )
        message = f"Urgent: {days} days of stock remaining"
    elif days <= settings.PLAN_DEPLETION_DAYS:
        signal_type, severity, action = (
            SignalType.PLAN_REORDER,
            Severity.MEDIUM,
            SignalAction.PLAN_REORDER,
        )
        message = f"Plan ahead: {days} days of stock remaining"
    else:
        return None

    return _signal(
        entry,
        signal_type,
        severity,
        velocity.confidence,
        message,
        action,
        days_until_depletion=days,
        quantity_on_hand=entry.item.quantity_on_hand,
        daily_velocity=round(velocity.daily_velocity, 2),
    )


def _velocity_change_signal(entry: EnrichedItem, history: HistoryContext) -> Optional[Signal]:
    if history.previous_velocity is None or not entry.velocity.is_available:
        return None

    delta = compute_velocity_delta(entry.velocity, history.previous_velocity)
    if delta.pattern == VelocityPattern.ACCELERATING:
        signal_type, action = SignalType.ACCELERATING_SALES, SignalAction.MONITOR_STOCK_LEVELS
    elif delta.pattern == VelocityPattern.DECELERATING:
        signal_type, action = SignalType.DECELERATING_SALES, SignalAction.CONSIDER_PROMOTION
    else:
        return None

    return _signal(
        entry,
        signal_type,
        Severity.MEDIUM,
        entry.velocity.confidence,
        delta.message,
        action,
        current_velocity=round(entry.velocity.daily_velocity, 2),
        previous_velocity=round(history.previous_velocity.daily_velocity, 2),
        velocity_change_percent=round(delta.percent, 2),
    )


def _stagnant_signal(entry: EnrichedItem, history: HistoryContext) -> Optional[Signal]:
    velocity = entry.velocity
    if not velocity.is_available or velocity.units_sold != 0:
        return None
    if entry.item.quantity_on_hand <= 0:
        return None

    return _signal(
        entry,
        SignalType.STAGNANT_INVENTORY,
        Severity.HIGH,
        Confidence.HIGH,
        f"No sales in {velocity.observation_days} days",
        SignalAction.PROMOTE_OR_DISCOUNT,
        observation_days=velocity.observation_days,
        quantity_on_hand=entry.item.quantity_on_hand,
    )


def _margin_erosion_signal(entry: EnrichedItem, history: HistoryContext) -> Optional[Signal]:
    trend = history.margin_trend
    if trend is None or trend.trend != TrendDirection.DECREASING:
        return None

    return _signal(
        entry,
        SignalType.MARGIN_EROSION,
        Severity.MEDIUM,
        Confidence.MEDIUM,
        "Margin has been declining over time",
        SignalAction.REVIEW_PRICING,
        trend_confidence=trend.confidence,
        margin_values=trend.values,
    )


def _price_opportunity_signal(entry: EnrichedItem, history: HistoryContext) -> Optional[Signal]:
    velocity = entry.velocity
    if not velocity.is_available or entry.item.quantity_on_hand <= settings.HIGH_STOCK_UNITS:
        return None
    if not 0 < velocity.daily_velocity < settings.SLOW_VELOCITY:
        return None

    # Never more confident than the velocity behind it.
    confidence = min(Confidence.MEDIUM, velocity.confidence, key=lambda c: c.level)
    return _signal(
        entry,
        SignalType.PRICE_OPPORTUNITY,
        Severity.MEDIUM,
        confidence,
        "High stock with slow movement - discount opportunity",
        SignalAction.CONSIDER_DISCOUNT,
        quantity_on_hand=entry.item.quantity_on_hand,
        daily_velocity=round(velocity.daily_velocity, 2),
    )


def _aging_stock_signal(entry: EnrichedItem, history: HistoryContext) -> Optional[Signal]:
    velocity = entry.velocity
    if not velocity.is_available or velocity.units_sold != 0:
        return None
    if entry.item.quantity_on_hand <= settings.AGING_STOCK_UNITS:
        return None

    return _signal(
        entry,
        SignalType.AGING_STOCK,
        Severity.HIGH,
        Confidence.HIGH,
        "High inventory with no recent sales - aging risk",
        SignalAction.URGENT_PROMOTION,
        quantity_on_hand=entry.item.quantity_on_hand,
        observation_days=velocity.observation_days,
    )


def _volatile_demand_signal(entry: EnrichedItem, history: HistoryContext) -> Optional[Signal]:
    variance = history.velocity_variance
    if variance is None or variance <= settings.HIGH_VARIANCE_PERCENT:
        return None

    return _signal(
        entry,
        SignalType.VOLATILE_DEMAND,
        Severity.LOW,
        Confidence.MEDIUM,
        "Large swings in sales velocity - unpredictable demand",
        SignalAction.INCREASE_SAFETY_STOCK,
        variance=variance,
    )


SIGNAL_RULES = [
    {"group": "urgency", "name": "depletion", "func": _depletion_signal},
    {"group": "performance", "name": "velocity_change", "func": _velocity_change_signal},
    {"group": "performance", "name": "stagnant", "func": _stagnant_signal},
    {"group": "health", "name": "margin_erosion", "func": _margin_erosion_signal},
    {"group": "health", "name": "price_opportunity", "func": _price_opportunity_signal},
    {"group": "risk", "name": "aging_stock", "func": _aging_stock_signal},
    {"group": "risk", "name": "volatile_demand", "func": _volatile_demand_signal},
]


# --- Detection ---


def detect_signals(
    entry: EnrichedItem, history: Optional[HistoryContext] = None
) -> list[Signal]:
    """All signals for one item, in rule order."""
    history = history or HistoryContext()
    signals = []
    for rule in SIGNAL_RULES:
        signal = rule["func"](entry, history)
        if signal is not None:
            signals.append(signal)
    return signals


def detect_all_signals(
    entries: Iterable[EnrichedItem],
    history_by_key: Optional[Mapping[ProductKey, HistoryContext]] = None,
) -> list[Signal]:
    """
    Signals for every item, most severe first.

    The sort is stable, so signals of equal severity keep item order. An item
    that fails is logged and skipped; the rest of the batch still runs.
    """
    history_by_key = history_by_key or {}
    all_signals = []
    failed = 0

    for entry in entries:
        try:
            all_signals.extend(detect_signals(entry, history_by_key.get(entry.key)))
        except Exception as e:
            failed += 1
            logger.error(f"❌ Signal detection failed for {entry.key}: {e}")

    if failed:
        logger.warning(f"⚠️ Skipped {failed} item(s) during signal detection.")

    all_signals.sort(key=lambda s: s.severity.rank)
    return all_signals


# --- Filters ---


def _as_set(values):
    if isinstance(values, (str, SignalType, Severity)):
        return {values}
    return set(values)


def filter_by_severity(
    signals: Iterable[Signal], severities: Union[Severity, Iterable[Severity]]
) -> list[Signal]:
    wanted = {Severity(s) for s in _as_set(severities)}
    return [s for s in signals if s.severity in wanted]


def filter_by_type(
    signals: Iterable[Signal], types: Union[SignalType, Iterable[SignalType]]
) -> list[Signal]:
    wanted = {SignalType(t) for t in _as_set(types)}
    return [s for s in signals if s.type in wanted]


def filter_by_confidence(
    signals: Iterable[Signal], min_confidence: Confidence = Confidence.LOW
) -> list[Signal]:
    """Keeps signals at or above `min_confidence`. NONE never passes."""
    floor = max(Confidence(min_confidence).level, Confidence.LOW.level)
    return [s for s in signals if s.confidence.level >= floor]


def group_signals_by_product(signals: Iterable[Signal]) -> dict[str, list[Signal]]:
    grouped: dict[str, list[Signal]] = {}
    for signal in signals:
        grouped.setdefault(str(signal.key), []).append(signal)
    return grouped


def summarize_signals(signals: Iterable[Signal]) -> dict:
    signals = list(signals)
    by_severity = {severity.value: 0 for severity in Severity}
    by_confidence = {c.value: 0 for c in (Confidence.HIGH, Confidence.MEDIUM, Confidence.LOW)}

    for signal in signals:
        by_severity[signal.severity.value] += 1
        by_confidence[signal.confidence.value] = by_confidence.get(signal.confidence.value, 0) + 1

    return {
        "total": len(signals),
        "by_severity": by_severity,
        "by_type": dict(Counter(signal.type.value for signal in signals)),
        "by_confidence": by_confidence,
    }
