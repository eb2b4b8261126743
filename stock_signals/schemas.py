from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer


# --- Enumerations ---


class Severity(str, Enum):
    """Signal severity. Ranked critical (0) to low (3)."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
}


class Confidence(str, Enum):
    """Sample-size confidence tier. Ordered none (0) to high (3)."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def level(self) -> int:
        return _CONFIDENCE_LEVEL[self]


_CONFIDENCE_LEVEL = {
    Confidence.NONE: 0,
    Confidence.LOW: 1,
    Confidence.MEDIUM: 2,
    Confidence.HIGH: 3,
}


class SourceStatus(str, Enum):
    OK = "ok"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


class VelocitySource(str, Enum):
    """Where a VelocityRecord's numbers came from."""

    EVENTS = "events"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


class TrendDirection(str, Enum):
    INSUFFICIENT_DATA = "insufficient_data"
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    NO_CLEAR_TREND = "no_clear_trend"


class DeltaDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    FLAT = "flat"
    NO_PRIOR = "no_prior"
    UNKNOWN = "unknown"


class VelocityPattern(str, Enum):
    ACCELERATING = "accelerating"
    DECELERATING = "decelerating"
    STABLE = "stable"
    UNKNOWN = "unknown"


class SignalType(str, Enum):
    # Urgency (stock depletion)
    CRITICAL_DEPLETION = "CRITICAL_DEPLETION"
    URGENT_REORDER = "URGENT_REORDER"
    PLAN_REORDER = "PLAN_REORDER"
    # Performance (sales movement)
    ACCELERATING_SALES = "ACCELERATING_SALES"
    DECELERATING_SALES = "DECELERATING_SALES"
    STAGNANT_INVENTORY = "STAGNANT_INVENTORY"
    # Health (margin and pricing)
    MARGIN_EROSION = "MARGIN_EROSION"
    PRICE_OPPORTUNITY = "PRICE_OPPORTUNITY"
    # Risk
    AGING_STOCK = "AGING_STOCK"
    VOLATILE_DEMAND = "VOLATILE_DEMAND"


class SignalAction(str, Enum):
    REORDER_IMMEDIATELY = "REORDER_IMMEDIATELY"
    REORDER_SOON = "REORDER_SOON"
    PLAN_REORDER = "PLAN_REORDER"
    MONITOR_STOCK_LEVELS = "MONITOR_STOCK_LEVELS"
    CONSIDER_PROMOTION = "CONSIDER_PROMOTION"
    PROMOTE_OR_DISCOUNT = "PROMOTE_OR_DISCOUNT"
    REVIEW_PRICING = "REVIEW_PRICING"
    CONSIDER_DISCOUNT = "CONSIDER_DISCOUNT"
    URGENT_PROMOTION = "URGENT_PROMOTION"
    INCREASE_SAFETY_STOCK = "INCREASE_SAFETY_STOCK"


class ActionType(str, Enum):
    REORDER = "REORDER"
    PROMOTE_OR_DISCOUNT = "PROMOTE_OR_DISCOUNT"
    INCREASE_REORDER_QTY = "INCREASE_REORDER_QTY"


# --- Keys ---


class ProductKey(BaseModel):
    """A product is identified by its SKU and its unit size."""

    model_config = ConfigDict(frozen=True)

    sku: str
    unit: str

    def __str__(self) -> str:
        return f"{self.sku}|{self.unit}"


class KeyedModel(BaseModel):
    sku: str = Field(..., min_length=1, validation_alias=AliasChoices("sku", "strain"))
    unit: str = Field(..., min_length=1)

    @property
    def key(self) -> ProductKey:
        return ProductKey(sku=self.sku, unit=self.unit)


# --- Raw inputs ---


class OrderEvent(KeyedModel):
    """One order line. Sourced externally, never fabricated."""

    model_config = ConfigDict(frozen=True)

    event_id: Optional[str] = None
    quantity: int = Field(..., gt=0)
    occurred_at: datetime


class InventoryItem(KeyedModel):
    """Current on-hand state of one product, owned by the inventory store."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    quantity_on_hand: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("quantity_on_hand", "quantity")
    )
    unit_cost: Optional[float] = Field(default=None, ge=0)
    unit_price: Optional[float] = Field(default=None, ge=0)
    name: Optional[str] = None

    @property
    def margin(self) -> Optional[float]:
        """Gross margin percent, or None unless both cost and price are known."""
        if self.unit_cost is None or not self.unit_price:
            return None
        return (self.unit_price - self.unit_cost) / self.unit_price * 100


# --- Derived records ---


class AggregatedSalesRecord(KeyedModel):
    model_config = ConfigDict(frozen=True)

    total_units_sold: int = Field(..., ge=0)
    order_count: int = Field(..., ge=0)
    first_order_at: datetime
    last_order_at: datetime


class VelocityRecord(KeyedModel):
    """
    Daily velocity and depletion estimate for one product.

    When `source` is not EVENTS the numeric fields are None: the velocity is
    absent, not zero.
    """

    model_config = ConfigDict(frozen=True)

    units_sold: Optional[int] = None
    order_count: int = 0
    daily_velocity: Optional[float] = None
    days_until_depletion: Optional[int] = None
    confidence: Confidence = Confidence.NONE
    observation_days: int
    first_order_at: Optional[datetime] = None
    last_order_at: Optional[datetime] = None
    source: VelocitySource = VelocitySource.EVENTS

    @property
    def is_available(self) -> bool:
        return self.source == VelocitySource.EVENTS

    @field_serializer("daily_velocity")
    def _round_velocity(self, value: Optional[float]) -> Optional[float]:
        return round(value, 2) if value is not None else None


class EnrichedItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    item: InventoryItem
    velocity: VelocityRecord

    @property
    def key(self) -> ProductKey:
        return self.item.key


class Snapshot(BaseModel):
    """A timestamped capture of enriched inventory for one store and timeframe."""

    model_config = ConfigDict(frozen=True)

    snapshot_id: str
    store_id: str
    timeframe: str = "daily"
    captured_at: datetime
    items: list[EnrichedItem] = Field(default_factory=list)
    metrics: dict[str, Optional[float]] = Field(default_factory=dict)


class DeltaRecord(KeyedModel):
    has_previous: bool
    current_qty: int
    previous_qty: int
    quantity_delta: int
    quantity_delta_percent: Optional[float] = None
    current_velocity: Optional[float] = None
    previous_velocity: Optional[float] = None
    velocity_delta: Optional[float] = None
    velocity_delta_percent: Optional[float] = None
    has_accelerated: bool = False
    has_decelerated: bool = False


class DeltaSummary(BaseModel):
    total_items: int = 0
    accelerating: int = 0
    decelerating: int = 0
    depleting: int = 0
    restocked: int = 0
    new_items: int = 0


class DeltaReport(BaseModel):
    has_comparison: bool
    previous_snapshot_id: Optional[str] = None
    deltas: list[DeltaRecord] = Field(default_factory=list)
    summary: DeltaSummary = Field(default_factory=DeltaSummary)


class MetricDelta(BaseModel):
    absolute: Optional[float] = None
    percent: Optional[float] = None
    direction: DeltaDirection
    has_comparison: bool
    current: Optional[float] = None
    previous: Optional[float] = None


class VelocityDelta(BaseModel):
    pattern: VelocityPattern
    absolute: Optional[float] = None
    percent: Optional[float] = None
    message: str


class TrendResult(BaseModel):
    trend: TrendDirection
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    snapshot_count: int = 0
    values: list[float] = Field(default_factory=list)


class HistoryContext(BaseModel):
    """Per-item history. Each field feeds exactly one signal rule."""

    previous_velocity: Optional[VelocityRecord] = None
    margin_trend: Optional[TrendResult] = None
    velocity_variance: Optional[float] = None


# --- Outputs ---


class Signal(KeyedModel):
    type: SignalType
    severity: Severity
    confidence: Confidence
    message: str
    action: SignalAction
    evidence: dict[str, Any] = Field(default_factory=dict)


class ProofObject(BaseModel):
    """An evidence-backed claim about one product."""

    proof_id: str
    product_id: str
    category: Optional[str] = None
    claim_type: str
    claim_summary: str
    evidence: dict[str, Any] = Field(default_factory=dict)
    confidence_score: float = Field(..., ge=0, le=1)
    confidence_level: Optional[Confidence] = None
    risk_level: Severity
    detected_at: datetime
    valid_until: datetime


class Action(BaseModel):
    action: ActionType
    product_id: str
    urgency: Severity
    reason: str


class SignalReport(BaseModel):
    store_id: str
    as_of: date
    generated_at: datetime
    velocity_source: VelocitySource
    inventory_origin: str
    snapshot_id: Optional[str] = None
    velocity: list[VelocityRecord] = Field(default_factory=list)
    deltas: Optional[DeltaReport] = None
    metric_deltas: dict[str, MetricDelta] = Field(default_factory=dict)
    metric_trends: dict[str, TrendResult] = Field(default_factory=dict)
    signals: list[Signal] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    signal_summary: dict[str, Any] = Field(default_factory=dict)
