from datetime import datetime, timedelta, timezone

import pytest

from stock_signals import settings
from stock_signals.analytics.velocity import enrich_inventory
from stock_signals.schemas import (
    AggregatedSalesRecord,
    Confidence,
    EnrichedItem,
    InventoryItem,
    VelocityRecord,
    VelocitySource,
)
from stock_signals.sources import QueryResult

NOW = datetime(2026, 3, 15, tzinfo=timezone.utc)


def _item(sku="BLUE-DREAM", unit="3.5g", qty=10, cost=None, price=None):
    return InventoryItem(sku=sku, unit=unit, quantity_on_hand=qty, unit_cost=cost, unit_price=price)


def _sale(sku="BLUE-DREAM", unit="3.5g", units=30, orders=10, last=NOW):
    return AggregatedSalesRecord(
        sku=sku,
        unit=unit,
        total_units_sold=units,
        order_count=orders,
        first_order_at=last - timedelta(days=20),
        last_order_at=last,
    )


def _enriched(qty=10, units=30, orders=10, days=30, sku="BLUE-DREAM", unit="3.5g", **item_kwargs):
    item = _item(sku=sku, unit=unit, qty=qty, **item_kwargs)
    sales = [_sale(sku=sku, unit=unit, units=units, orders=orders)] if units else []
    return enrich_inventory([item], sales, observation_days=days)[0]


def _velocity(daily_velocity, sku="BLUE-DREAM", unit="3.5g", orders=10):
    return VelocityRecord(
        sku=sku,
        unit=unit,
        units_sold=round(daily_velocity * 30),
        order_count=orders,
        daily_velocity=daily_velocity,
        confidence=Confidence.HIGH,
        observation_days=30,
        source=VelocitySource.EVENTS,
    )


@pytest.fixture
def make_item():
    return _item


@pytest.fixture
def make_sale():
    return _sale


@pytest.fixture
def make_enriched():
    return _enriched


@pytest.fixture
def make_velocity():
    return _velocity


@pytest.fixture
def with_item():
    def build(item: InventoryItem, velocity: VelocityRecord) -> EnrichedItem:
        return EnrichedItem(item=item, velocity=velocity)

    return build


class FakeEventSource:
    """In-memory OrderEventSource."""

    def __init__(self, events=None, result=None, exc=None):
        self.events = events or []
        self.result = result
        self.exc = exc
        self.calls = []

    def query_events(self, start, end):
        self.calls.append((start, end))
        if self.exc is not None:
            raise self.exc
        if self.result is not None:
            return self.result
        return QueryResult(ok=True, data=list(self.events))


class FakeInventoryStore:
    def __init__(self, items=None, exc=None):
        self.items = items or []
        self.exc = exc

    def get_current_inventory(self, source="csv"):
        if self.exc is not None:
            raise self.exc
        return list(self.items)


@pytest.fixture
def fake_event_source():
    return FakeEventSource


@pytest.fixture
def fake_inventory_store():
    return FakeInventoryStore


@pytest.fixture
def isolated_settings(monkeypatch, tmp_path):
    """Points every file location at tmp_path and disables the webhook."""
    monkeypatch.setattr(settings, "INPUT_DIR", tmp_path / "input")
    monkeypatch.setattr(settings, "OUTPUT_DIR", tmp_path / "output")
    monkeypatch.setattr(settings, "SNAPSHOT_DIR", tmp_path / "snapshots")
    monkeypatch.setattr(settings, "LOG_DIR", tmp_path / "logs")
    monkeypatch.setattr(settings, "WEBHOOK_URL", None)
    (tmp_path / "input").mkdir()
    return tmp_path
