import logging
import re
from collections.abc import Mapping
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd

logger = logging.getLogger(__name__)

# Matches the date stamp in report filenames, e.g. 'orders_2026-10-19.csv'.
_FILE_DATE_PATTERN = re.compile(r"(\d{4}-\d{2}-\d{2})")


def get_date_suffix_for_filename(as_of: date | None = None) -> str:
    """Returns the date as a YYYY-MM-DD string for filenames."""
    return (as_of or datetime.now().date()).strftime("%Y-%m-%d")


# Tried in order; latin-1 decodes any byte sequence.
CSV_ENCODINGS = ("utf-8-sig", "latin-1")


def load_csv(file_path: Path, skiprows: int = 0) -> pd.DataFrame | None:
    """Reads an export, falling back through CSV_ENCODINGS. None if unreadable."""
    if not file_path.exists():
        logger.info(f"Report not found at {file_path}, skipping.")
        return None

    for encoding in CSV_ENCODINGS:
        try:
            return pd.read_csv(file_path, encoding=encoding, skiprows=skiprows)
        except UnicodeDecodeError:
            logger.info(f"{file_path.name} is not {encoding}; trying the next encoding.")
        except (OSError, ValueError) as e:
            # EmptyDataError and ParserError are ValueErrors.
            logger.error(f"❌ Could not read {file_path.name}: {e}")
            return None

    logger.error(f"❌ Could not decode {file_path.name} with any of {CSV_ENCODINGS}")
    return None


def find_latest_report(directory: Path, prefix: str) -> tuple[Path, date] | None:
    """
    Finds the newest CSV in `directory` whose name starts with `prefix`.

    The report date comes from a YYYY-MM-DD stamp in the filename; files without
    one fall back to their modification date.
    """
    if not directory.exists():
        return None

    candidates = []
    for path in directory.glob(f"{prefix}*.csv"):
        match = _FILE_DATE_PATTERN.search(path.stem)
        if match:
            report_date = date.fromisoformat(match.group(1))
        else:
            report_date = datetime.fromtimestamp(path.stat().st_mtime).date()
        candidates.append((report_date, path.name, path))

    if not candidates:
        return None

    report_date, _, path = max(candidates)
    return path, report_date


def to_utc_timestamp(value: Any) -> pd.Timestamp | None:
    """
    Coerces a date, datetime, string or Timestamp to a UTC Timestamp.

    Naive values are read as UTC. Returns None for missing or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError):
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is None:
        return ts.tz_localize(timezone.utc)
    return ts.tz_convert(timezone.utc)


def get_nested_value(obj: Any, path: str) -> Any:
    """
    Resolves a dotted path ('metrics.total_units_sold') against nested
    mappings and objects. Returns None as soon as a segment is missing.
    """
    current = obj
    for key in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(key)
        else:
            current = getattr(current, key, None)
    return current
