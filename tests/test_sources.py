from datetime import date, datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from stock_signals.analytics.snapshots import build_snapshot
from stock_signals.errors import DataUnavailableError, MalformedRecordError
from stock_signals.schemas import SourceStatus
from stock_signals.snapshot_store import SnapshotStore
from stock_signals.sources import (
    CsvInventoryStore,
    CsvOrderEventSource,
    HttpOrderEventSource,
    parse_inventory_row,
    resolve_inventory,
)

START = datetime(2026, 3, 1, tzinfo=timezone.utc)
END = datetime(2026, 3, 31, tzinfo=timezone.utc)


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return path


def test_csv_inventory_uses_latest_report(tmp_path):
    _write(tmp_path / "inventory_2026-03-01.csv", "sku,unit,quantity\nOLD,1g,1\n")
    _write(
        tmp_path / "inventory_2026-03-14.csv",
        "sku,unit,quantity,unit_cost,unit_price\n1001,3.5g,12,10,25\nGELATO,1g,4,,\n",
    )

    store = CsvInventoryStore(tmp_path, "inventory_")
    items = store.get_current_inventory()

    assert store.report_date == date(2026, 3, 14)
    assert [(i.sku, i.unit, i.quantity_on_hand) for i in items] == [
        ("1001", "3.5g", 12),
        ("GELATO", "1g", 4),
    ]
    assert items[0].margin == pytest.approx(60.0)
    assert items[1].unit_cost is None


def test_csv_inventory_drops_malformed_rows(tmp_path):
    _write(
        tmp_path / "inventory_2026-03-14.csv",
        "sku,unit,quantity\nA,1g,5\n,1g,3\nB,1g,-2\nC,,7\nD,1g,lots\n",
    )

    store = CsvInventoryStore(tmp_path, "inventory_")
    items = store.get_current_inventory()

    assert [i.sku for i in items] == ["A"]
    assert store.dropped_rows == 4


def test_csv_inventory_accepts_legacy_columns(tmp_path):
    _write(tmp_path / "inventory_2026-03-14.csv", "Strain,Unit,Quantity\nGELATO,1g,4\n")

    [item] = CsvInventoryStore(tmp_path, "inventory_").get_current_inventory()

    assert item.sku == "GELATO"


def test_missing_inventory_is_unavailable(tmp_path):
    with pytest.raises(DataUnavailableError):
        CsvInventoryStore(tmp_path, "inventory_").get_current_inventory()


def test_parse_inventory_row_raises_malformed():
    with pytest.raises(MalformedRecordError):
        parse_inventory_row({"sku": "A", "unit": "1g", "quantity": -1})


def test_csv_orders(tmp_path):
    _write(
        tmp_path / "orders_2026-03-14.csv",
        "event_id,sku,unit,quantity,occurred_at\n"
        "1,OG-KUSH,3.5g,2,2026-03-02T10:00:00Z\n"
        "2,OG-KUSH,3.5g,1,2026-03-03T10:00:00Z\n",
    )

    source = CsvOrderEventSource(tmp_path, "orders_")
    result = source.query_events(START, END)

    assert result.ok
    assert source.report_date == date(2026, 3, 14)
    assert [e["event_id"] for e in result.data] == ["1", "2"]
    assert result.data[0]["sku"] == "OG-KUSH"


def test_csv_orders_missing_export(tmp_path):
    with pytest.raises(DataUnavailableError):
        CsvOrderEventSource(tmp_path, "orders_").query_events(START, END)


def _session(payload=None, exc=None):
    session = MagicMock(spec=requests.Session)
    if exc is not None:
        session.get.side_effect = exc
    else:
        response = MagicMock()
        response.json.return_value = payload
        session.get.return_value = response
    return session


def test_http_orders_returns_events():
    session = _session({"events": [{"sku": "A"}]})
    source = HttpOrderEventSource("https://orders.example/api", timeout=3, session=session)

    result = source.query_events(START, END)

    assert result.ok
    assert result.data == [{"sku": "A"}]
    _, kwargs = session.get.call_args
    assert kwargs["timeout"] == 3
    assert kwargs["params"]["start"] == START.isoformat()


def test_http_timeout_is_unavailable():
    source = HttpOrderEventSource("https://orders.example/api", session=_session(exc=requests.exceptions.Timeout("slow")))

    result = source.query_events(START, END)

    assert not result.ok
    assert result.status == SourceStatus.UNAVAILABLE


def test_http_error_is_an_error():
    source = HttpOrderEventSource("https://orders.example/api", session=_session(exc=requests.exceptions.HTTPError("500")))

    assert source.query_events(START, END).status == SourceStatus.ERROR


def test_http_unexpected_payload_is_an_error():
    source = HttpOrderEventSource("https://orders.example/api", session=_session({"rows": 1}))

    assert source.query_events(START, END).status == SourceStatus.ERROR


def test_resolve_inventory_prefers_live(fake_inventory_store, make_item, tmp_path):
    resolution = resolve_inventory(
        fake_inventory_store(items=[make_item()]), SnapshotStore(tmp_path), "main"
    )

    assert resolution.ok
    assert resolution.origin == "live"


def test_resolve_inventory_falls_back_to_last_snapshot(fake_inventory_store, make_enriched, tmp_path):
    snapshots = SnapshotStore(tmp_path)
    snapshots.save(build_snapshot("main", [make_enriched(qty=33)], START))

    resolution = resolve_inventory(
        fake_inventory_store(exc=DataUnavailableError("down")), snapshots, "main"
    )

    assert resolution.ok
    assert resolution.origin == "snapshot"
    assert resolution.snapshot_id == "main_daily_20260301"
    assert resolution.items[0].quantity_on_hand == 33


def test_resolve_inventory_never_fabricates(fake_inventory_store, tmp_path):
    resolution = resolve_inventory(
        fake_inventory_store(exc=DataUnavailableError("down")), SnapshotStore(tmp_path), "main"
    )

    assert not resolution.ok
    assert resolution.items == []
    assert resolution.status == SourceStatus.UNAVAILABLE
    assert resolution.error == "down"
