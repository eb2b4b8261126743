"""
Snapshot history.

One JSON file per snapshot under SNAPSHOT_DIR, written atomically, with a
small in-memory LRU in front of the disk. History is append-only: a snapshot
id is written once and never overwritten.
"""

import json
import logging
import os
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from . import settings
from .errors import SnapshotConflictError
from .schemas import Snapshot

logger = logging.getLogger(__name__)

CACHE_VERSION = "1.0"
TEMP_SUFFIX = ".tmp"


class SnapshotStore:
    def __init__(self, directory: Optional[Path] = None, memory_size: Optional[int] = None):
        self.directory = Path(directory or settings.SNAPSHOT_DIR)
        self.memory_size = memory_size or settings.SNAPSHOT_MEMORY_CACHE_SIZE
        self._memory: OrderedDict[str, Snapshot] = OrderedDict()
        self.directory.mkdir(parents=True, exist_ok=True)

    # --- Memory cache ---

    def _remember(self, snapshot: Snapshot) -> None:
        self._memory.pop(snapshot.snapshot_id, None)
        self._memory[snapshot.snapshot_id] = snapshot
        if len(self._memory) > self.memory_size:
            evicted, _ = self._memory.popitem(last=False)
            logger.debug(f"Evicted snapshot {evicted} from memory cache")

    def _forget(self, snapshot_id: str) -> None:
        self._memory.pop(snapshot_id, None)

    # --- Disk ---

    def _path(self, snapshot_id: str) -> Path:
        return self.directory / f"{snapshot_id}.json"

    def _snapshot_files(self) -> list[Path]:
        return sorted(
            p for p in self.directory.glob("*.json") if not p.stem.endswith(TEMP_SUFFIX)
        )

    def exists(self, snapshot_id: str) -> bool:
        return snapshot_id in self._memory or self._path(snapshot_id).exists()

    def save(self, snapshot: Snapshot) -> Path:
        """Writes `snapshot` via a temp file and an atomic rename."""
        path = self._path(snapshot.snapshot_id)
        if self.exists(snapshot.snapshot_id):
            raise SnapshotConflictError(f"Snapshot {snapshot.snapshot_id} already exists")

        entry = {
            "key": snapshot.snapshot_id,
            "version": CACHE_VERSION,
            "cached_at": datetime.now(timezone.utc).isoformat(),
            "snapshot": snapshot.model_dump(mode="json"),
        }

        temp_path = path.with_name(f"{snapshot.snapshot_id}{TEMP_SUFFIX}.json")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(entry, f, indent=2)
            os.replace(temp_path, path)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise

        self._remember(snapshot)
        logger.info(f"💾 Saved snapshot {snapshot.snapshot_id} to {path}")
        return path

    def _read(self, path: Path) -> Optional[Snapshot]:
        try:
            with open(path, encoding="utf-8") as f:
                entry = json.load(f)
            return Snapshot.model_validate(entry["snapshot"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            # ValidationError and JSONDecodeError are both ValueErrors.
            reason = e.error_count() if isinstance(e, ValidationError) else e
            logger.error(f"❌ Could not read snapshot file {path.name}: {reason}")
            return None

    def load(self, snapshot_id: str) -> Optional[Snapshot]:
        if snapshot_id in self._memory:
            self._memory.move_to_end(snapshot_id)
            return self._memory[snapshot_id]

        path = self._path(snapshot_id)
        if not path.exists():
            return None

        snapshot = self._read(path)
        if snapshot is not None:
            self._remember(snapshot)
        return snapshot

    def _all(self) -> list[Snapshot]:
        snapshots = []
        for path in self._snapshot_files():
            snapshot = self.load(path.stem)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    # --- Queries ---

    def history(
        self,
        store_id: str,
        count: int = settings.TREND_WINDOW_MAX,
        timeframe: Optional[str] = None,
        before: Optional[datetime] = None,
    ) -> list[Snapshot]:
        """Up to `count` snapshots for the store, newest first."""
        matches = [
            s
            for s in self._all()
            if s.store_id == store_id
            and (timeframe is None or s.timeframe == timeframe)
            and (before is None or s.captured_at < before)
        ]
        matches.sort(key=lambda s: s.captured_at, reverse=True)
        return matches[:count]

    def latest(self, store_id: str, timeframe: Optional[str] = None) -> Optional[Snapshot]:
        recent = self.history(store_id, count=1, timeframe=timeframe)
        return recent[0] if recent else None

    def list_snapshots(self, store_id: Optional[str] = None) -> list[dict[str, Any]]:
        """Lightweight metadata for every stored snapshot, newest first."""
        listing = [
            {
                "snapshot_id": s.snapshot_id,
                "store_id": s.store_id,
                "timeframe": s.timeframe,
                "captured_at": s.captured_at,
                "item_count": len(s.items),
                "size_bytes": self._path(s.snapshot_id).stat().st_size,
            }
            for s in self._all()
            if store_id is None or s.store_id == store_id
        ]
        listing.sort(key=lambda entry: entry["captured_at"], reverse=True)
        return listing

    def cleanup(
        self, older_than_days: Optional[int] = None, now: Optional[datetime] = None
    ) -> int:
        """Deletes snapshots captured more than `older_than_days` ago."""
        days = settings.SNAPSHOT_RETENTION_DAYS if older_than_days is None else older_than_days
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)

        deleted = 0
        for snapshot in self._all():
            if snapshot.captured_at < cutoff:
                self._path(snapshot.snapshot_id).unlink(missing_ok=True)
                self._forget(snapshot.snapshot_id)
                deleted += 1
                logger.info(f"🧹 Deleted old snapshot {snapshot.snapshot_id}")

        logger.info(f"Cleanup complete: {deleted} snapshot(s) older than {days} days removed.")
        return deleted
