from datetime import date, datetime, timezone

import pytest

from stock_signals.analytics.aggregation import aggregate_events, aggregate_order_events
from stock_signals.errors import DataUnavailableError
from stock_signals.schemas import OrderEvent, SourceStatus
from stock_signals.sources import QueryResult

START = datetime(2026, 3, 1, tzinfo=timezone.utc)
END = datetime(2026, 3, 31, tzinfo=timezone.utc)


def _event(event_id, sku, unit, quantity, occurred_at):
    return {
        "event_id": event_id,
        "sku": sku,
        "unit": unit,
        "quantity": quantity,
        "occurred_at": occurred_at,
    }


def test_groups_by_sku_and_unit():
    events = [
        _event("e1", "OG-KUSH", "3.5g", 2, "2026-03-02T10:00:00Z"),
        _event("e2", "OG-KUSH", "3.5g", 3, "2026-03-05T10:00:00Z"),
        _event("e3", "OG-KUSH", "7g", 1, "2026-03-06T10:00:00Z"),
        _event("e4", "BLUE-DREAM", "3.5g", 4, "2026-03-07T10:00:00Z"),
    ]

    records = aggregate_events(events, START, END)

    assert [(r.sku, r.unit) for r in records] == [
        ("BLUE-DREAM", "3.5g"),
        ("OG-KUSH", "3.5g"),
        ("OG-KUSH", "7g"),
    ]
    og = records[1]
    assert og.total_units_sold == 5
    assert og.order_count == 2
    assert og.first_order_at == datetime(2026, 3, 2, 10, tzinfo=timezone.utc)
    assert og.last_order_at == datetime(2026, 3, 5, 10, tzinfo=timezone.utc)


def test_same_input_gives_same_output():
    events = [
        _event("e2", "B", "1g", 1, "2026-03-03T00:00:00Z"),
        _event("e1", "A", "1g", 2, "2026-03-02T00:00:00Z"),
        _event("e3", "A", "1g", 5, "2026-03-04T00:00:00Z"),
    ]

    first = aggregate_events(events, START, END)
    second = aggregate_events(list(reversed(events)), START, END)

    assert first == second


def test_window_includes_start_and_excludes_end():
    events = [
        _event("at-start", "A", "1g", 1, START),
        _event("at-end", "A", "1g", 10, END),
        _event("before", "A", "1g", 100, datetime(2026, 2, 28, 23, 59, tzinfo=timezone.utc)),
    ]

    records = aggregate_events(events, START, END)

    assert len(records) == 1
    assert records[0].total_units_sold == 1
    assert records[0].order_count == 1


def test_naive_timestamps_and_dates_are_utc():
    events = [_event("e1", "A", "1g", 2, datetime(2026, 3, 1, 0, 0))]

    records = aggregate_events(events, date(2026, 3, 1), date(2026, 3, 2))

    assert records[0].first_order_at.tzinfo is not None
    assert records[0].total_units_sold == 2


def test_malformed_events_are_dropped():
    events = [
        _event("ok", "A", "1g", 2, "2026-03-02T00:00:00Z"),
        _event("no-sku", None, "1g", 2, "2026-03-02T00:00:00Z"),
        _event("blank-unit", "A", "  ", 2, "2026-03-02T00:00:00Z"),
        _event("zero", "A", "1g", 0, "2026-03-02T00:00:00Z"),
        _event("negative", "A", "1g", -3, "2026-03-02T00:00:00Z"),
        _event("fraction", "A", "1g", 1.5, "2026-03-02T00:00:00Z"),
        _event("text", "A", "1g", "lots", "2026-03-02T00:00:00Z"),
        _event("bad-date", "A", "1g", 2, "not a date"),
    ]

    records = aggregate_events(events, START, END)

    assert len(records) == 1
    assert records[0].total_units_sold == 2
    assert records[0].order_count == 1


def test_duplicate_event_ids_count_once():
    events = [
        _event("dup", "A", "1g", 2, "2026-03-02T00:00:00Z"),
        _event("dup", "A", "1g", 2, "2026-03-02T00:00:00Z"),
        _event(None, "A", "1g", 1, "2026-03-03T00:00:00Z"),
        _event(None, "A", "1g", 1, "2026-03-03T00:00:00Z"),
    ]

    records = aggregate_events(events, START, END)

    # Events without an id cannot be de-duplicated.
    assert records[0].order_count == 3
    assert records[0].total_units_sold == 4


def test_accepts_legacy_strain_field_and_models():
    events = [
        {"strain": "GELATO", "unit": "1g", "quantity": 1, "occurred_at": "2026-03-02"},
        OrderEvent(sku="GELATO", unit="1g", quantity=2, occurred_at=datetime(2026, 3, 3, tzinfo=timezone.utc)),
    ]

    records = aggregate_events(events, START, END)

    assert records[0].sku == "GELATO"
    assert records[0].total_units_sold == 3


def test_empty_input_gives_empty_list():
    assert aggregate_events([], START, END) == []


def test_inverted_window_is_an_error():
    with pytest.raises(ValueError):
        aggregate_events([], END, START)


def test_unsupported_event_type_is_an_error():
    with pytest.raises(TypeError):
        aggregate_events([42], START, END)


def test_source_result_carries_counts(fake_event_source):
    source = fake_event_source(
        events=[
            _event("e1", "A", "1g", 2, "2026-03-02T00:00:00Z"),
            _event("e2", "A", "1g", 0, "2026-03-02T00:00:00Z"),
        ]
    )

    result = aggregate_order_events(source, START, END)

    assert result.ok
    assert result.status == SourceStatus.OK
    assert result.total_events == 2
    assert result.dropped_events == 1
    assert result.unique_products == 1
    assert source.calls == [(START, END)]


def test_source_elements_that_are_not_records_are_dropped(fake_event_source):
    good = _event("e1", "A", "1g", 2, "2026-03-02T00:00:00Z")
    source = fake_event_source(events=[good, None, "x"])

    result = aggregate_order_events(source, START, END)

    assert result.ok
    assert result.total_events == 3
    assert result.dropped_events == 2
    [record] = result.records
    assert record.total_units_sold == 2


def test_unavailable_source_is_not_an_empty_aggregation(fake_event_source):
    source = fake_event_source(result=QueryResult.unavailable("timeout"))

    result = aggregate_order_events(source, START, END)

    assert not result.ok
    assert result.status == SourceStatus.UNAVAILABLE
    assert result.records == []
    assert result.error == "timeout"


def test_raising_source_is_reported(fake_event_source):
    unavailable = aggregate_order_events(
        fake_event_source(exc=DataUnavailableError("no export")), START, END
    )
    broken = aggregate_order_events(fake_event_source(exc=OSError("disk")), START, END)

    assert unavailable.status == SourceStatus.UNAVAILABLE
    assert broken.status == SourceStatus.ERROR
    assert not broken.ok
