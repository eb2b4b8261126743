"""
Collaborator contracts and the adapters that fulfil them.

The analytics stages only see `OrderEventSource` and `InventoryStore`. The
adapters here read the latest dated CSV export from the input folder or pull
events over HTTP. Anything that cannot be reached surfaces as an explicit
unavailable/error status, never as an empty result.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Protocol

import pandas as pd
import requests
from pydantic import ValidationError

from . import settings
from .errors import DataUnavailableError, MalformedRecordError
from .schemas import InventoryItem, SourceStatus
from .utils import find_latest_report, load_csv

if TYPE_CHECKING:
    from .snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

# Columns that must stay text even when every value looks numeric.
TEXT_COLUMNS = ("event_id", "sku", "strain", "unit", "name")


@dataclass
class QueryResult:
    ok: bool
    data: list[Any] = field(default_factory=list)
    error: Optional[str] = None
    status: SourceStatus = SourceStatus.OK

    @classmethod
    def unavailable(cls, error: str) -> "QueryResult":
        return cls(ok=False, error=error, status=SourceStatus.UNAVAILABLE)

    @classmethod
    def failed(cls, error: str) -> "QueryResult":
        return cls(ok=False, error=error, status=SourceStatus.ERROR)


class OrderEventSource(Protocol):
    def query_events(self, start: datetime, end: datetime) -> QueryResult: ...


class InventoryStore(Protocol):
    def get_current_inventory(self, source: str) -> list[InventoryItem]: ...


def _frame_to_records(df: pd.DataFrame) -> list[dict[str, Any]]:
    """Turns a raw CSV frame into plain dicts, with blanks as None."""
    df = df.rename(columns=lambda c: str(c).strip().lower())
    df = df.astype(object).where(df.notna(), None)
    records = df.to_dict("records")
    for record in records:
        for column in TEXT_COLUMNS:
            value = record.get(column)
            if value is not None and not isinstance(value, str):
                # 1001.0 -> '1001' for ids pandas read as floats
                if isinstance(value, float) and value.is_integer():
                    value = int(value)
                record[column] = str(value)
    return records


# --- Order events ---


class CsvOrderEventSource:
    """Reads order lines from the newest `orders_*.csv` in a folder."""

    def __init__(self, directory: Optional[Path] = None, prefix: Optional[str] = None):
        self.directory = directory or settings.INPUT_DIR
        self.prefix = prefix or settings.ORDERS_FILENAME_PREFIX
        self.report_date: Optional[date] = None

    def query_events(self, start: datetime, end: datetime) -> QueryResult:
        latest = find_latest_report(self.directory, self.prefix)
        if latest is None:
            raise DataUnavailableError(
                f"No '{self.prefix}*.csv' export found in {self.directory}"
            )

        path, self.report_date = latest
        df = load_csv(path)
        if df is None:
            return QueryResult.failed(f"Could not read {path.name}")

        records = _frame_to_records(df)
        logger.info(f"✅ Loaded {len(records)} order lines from {path.name}")
        # Window filtering is left to the aggregator.
        return QueryResult(ok=True, data=records)


class HttpOrderEventSource:
    """Pulls order events from a JSON endpoint: GET <url>?start=..&end=.."""

    def __init__(
        self,
        url: str,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.timeout = timeout or settings.SOURCE_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def query_events(self, start: datetime, end: datetime) -> QueryResult:
        params = {"start": start.isoformat(), "end": end.isoformat()}
        try:
            response = self.session.get(self.url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            logger.warning(f"⚠️ Order event API unreachable: {e}")
            return QueryResult.unavailable(str(e))
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ Order event API request failed: {e}")
            return QueryResult.failed(str(e))
        except ValueError as e:
            logger.error(f"❌ Order event API returned invalid JSON: {e}")
            return QueryResult.failed(f"Invalid JSON: {e}")

        events = payload.get("events") if isinstance(payload, dict) else payload
        if not isinstance(events, list):
            return QueryResult.failed("Unexpected payload: no event list")

        logger.info(f"✅ Fetched {len(events)} order events from {self.url}")
        return QueryResult(ok=True, data=events)


# --- Inventory ---


def parse_inventory_row(row: dict[str, Any]) -> InventoryItem:
    try:
        return InventoryItem.model_validate(row)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        raise MalformedRecordError(f"Invalid inventory row ({fields or 'row'})") from e


class CsvInventoryStore:
    """Current on-hand quantities from the newest `inventory_*.csv`."""

    def __init__(self, directory: Optional[Path] = None, prefix: Optional[str] = None):
        self.directory = directory or settings.INPUT_DIR
        self.prefix = prefix or settings.INVENTORY_FILENAME_PREFIX
        self.report_date: Optional[date] = None
        self.dropped_rows = 0

    def get_current_inventory(self, source: str = "csv") -> list[InventoryItem]:
        latest = find_latest_report(self.directory, self.prefix)
        if latest is None:
            raise DataUnavailableError(
                f"No '{self.prefix}*.csv' inventory found in {self.directory} ({source})"
            )

        path, self.report_date = latest
        df = load_csv(path)
        if df is None:
            raise DataUnavailableError(f"Could not read inventory file {path.name}")

        items = []
        self.dropped_rows = 0
        for index, row in enumerate(_frame_to_records(df), start=1):
            try:
                items.append(parse_inventory_row(row))
            except MalformedRecordError as e:
                self.dropped_rows += 1
                logger.warning(f"⚠️ Skipping inventory row {index}: {e}")

        logger.info(
            f"✅ Parsed {path.name}: {len(items)} items, {self.dropped_rows} dropped."
        )
        return items


@dataclass
class InventoryResolution:
    """Which inventory the run uses, and where it came from."""

    ok: bool
    items: list[InventoryItem] = field(default_factory=list)
    origin: str = "unavailable"  # live | snapshot | unavailable
    snapshot_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def status(self) -> SourceStatus:
        return SourceStatus.OK if self.ok else SourceStatus.UNAVAILABLE


def resolve_inventory(
    store: InventoryStore,
    snapshot_store: Optional["SnapshotStore"],
    store_id: str,
    source: str = "csv",
) -> InventoryResolution:
    """
    Cache-aside inventory lookup.

    Live inventory first; if the store cannot be reached, the items of the
    last saved snapshot; otherwise an explicit unavailable result.
    """
    try:
        items = store.get_current_inventory(source)
        return InventoryResolution(ok=True, items=items, origin="live")
    except DataUnavailableError as e:
        logger.warning(f"⚠️ Live inventory unavailable: {e}")
        live_error = str(e)

    if snapshot_store is not None:
        snapshot = snapshot_store.latest(store_id)
        if snapshot is not None:
            logger.info(f"♻️ Falling back to inventory from snapshot {snapshot.snapshot_id}")
            return InventoryResolution(
                ok=True,
                items=[entry.item for entry in snapshot.items],
                origin="snapshot",
                snapshot_id=snapshot.snapshot_id,
            )

    return InventoryResolution(ok=False, error=live_error)
