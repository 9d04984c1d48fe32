"""Per-user palette history, sharded on disk.

Layout::

    data_dir/
      <sha256(user id)>/
        <id>.json        # one HistoryRecord per file

Each append writes exactly one new file, so concurrent appends to a shard
never overwrite each other and nothing ever rewrites the whole history.
Reads sort on every call; directory listing order is not trusted.
"""
from __future__ import annotations

import hashlib
import logging
import threading
import time
import uuid
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from palette.errors import StoreUnavailable
from palette.types import HistoryRecord
from utils.io import atomic_write_json, ensure_dir, read_json

logger = logging.getLogger(__name__)

DEFAULT_USER = "default-user"
DEFAULT_MAX_ENTRIES = 50
DEFAULT_LOCK_STRIPES = 64

RETENTION_TRUNCATE_ON_READ = "truncate_on_read"
RETENTION_BOUNDED = "bounded"
RETENTION_POLICIES = (RETENTION_TRUNCATE_ON_READ, RETENTION_BOUNDED)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_entry_id() -> str:
    # Millisecond prefix keeps ids roughly time-ordered; the random suffix keeps
    # them unique when several appends land in the same millisecond.
    return f"{_now_ms():013d}-{uuid.uuid4().hex[:12]}"


def _timestamp_value(record: Dict[str, Any]) -> float:
    ts = record.get("timestamp")
    if isinstance(ts, bool):
        return 0.0
    try:
        return float(ts)
    except (TypeError, ValueError):
        return 0.0


def shard_key(user_id: str) -> str:
    """Deterministic shard name for a user identifier."""
    return hashlib.sha256(user_id.encode("utf-8")).hexdigest()


class HistoryShard:
    """Append-only, ordered, bounded log of palettes for one user."""

    def __init__(
        self,
        root: Path,
        *,
        max_entries: int,
        retention: str,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self.root = root
        self.max_entries = max_entries
        self.retention = retention
        self._lock = lock or threading.RLock()

    def _entry_path(self, entry_id: str) -> Path:
        return self.root / f"{entry_id}.json"

    def _entry_paths(self) -> List[Path]:
        if not self.root.exists():
            return []
        return [p for p in self.root.iterdir() if p.suffix == ".json" and p.is_file()]

    def _read_all(self) -> List[Tuple[str, Dict[str, Any]]]:
        entries: List[Tuple[str, Dict[str, Any]]] = []
        for path in self._entry_paths():
            try:
                record = read_json(path)
            except FileNotFoundError:
                # Pruned between listing and reading.
                continue
            except ValueError as e:
                logger.warning("Skipping corrupt history entry %s: %s", path, e)
                continue
            if not isinstance(record, dict):
                logger.warning("Skipping history entry %s: expected an object", path)
                continue
            entries.append((path.stem, record))
        entries.sort(key=lambda item: (_timestamp_value(item[1]), item[0]), reverse=True)
        return entries

    # --------- core API ----------
    def append(self, record: Dict[str, Any]) -> str:
        """Persist ``record`` under a fresh identifier and return the identifier."""
        if not isinstance(record, dict):
            raise TypeError("record must be a dict")

        stored = dict(record)
        if stored.get("timestamp") is None:
            stored["timestamp"] = _now_ms()

        with self._lock:
            try:
                ensure_dir(self.root)
                entry_id = _new_entry_id()
                while self._entry_path(entry_id).exists():
                    entry_id = _new_entry_id()
                atomic_write_json(self._entry_path(entry_id), stored)
                if self.retention == RETENTION_BOUNDED:
                    self._prune()
            except OSError as e:
                raise StoreUnavailable(f"Failed to save history entry: {e}") from e
        logger.info("Saved history entry %s in shard %s", entry_id, self.root.name[:12])
        return entry_id

    def list(self) -> "OrderedDict[str, HistoryRecord]":
        """Newest-first entries, at most ``max_entries`` of them."""
        with self._lock:
            try:
                entries = self._read_all()
            except OSError as e:
                raise StoreUnavailable(f"Failed to read history: {e}") from e
        return OrderedDict(entries[: self.max_entries])  # type: ignore[arg-type]

    def count(self) -> int:
        with self._lock:
            try:
                return len(self._entry_paths())
            except OSError as e:
                raise StoreUnavailable(f"Failed to read history: {e}") from e

    # --------- internals ----------
    def _prune(self) -> None:
        """Delete entries older than the newest ``max_entries``."""
        for entry_id, _ in self._read_all()[self.max_entries :]:
            self._entry_path(entry_id).unlink(missing_ok=True)


class HistoryStore:
    """Routes user identifiers to isolated :class:`HistoryShard` instances.

    The same identifier always maps to the same directory and the same lock;
    a missing or empty identifier maps to ``default_user``. Shards are cheap
    views built per call and locks come from a fixed pool, so memory does not
    grow with the number of distinct identifiers.
    """

    def __init__(
        self,
        data_dir: str,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        retention: str = RETENTION_TRUNCATE_ON_READ,
        default_user: str = DEFAULT_USER,
        lock_stripes: int = DEFAULT_LOCK_STRIPES,
    ) -> None:
        if retention not in RETENTION_POLICIES:
            raise ValueError(f"Unknown retention policy {retention!r}; expected one of {RETENTION_POLICIES}")
        if int(max_entries) <= 0:
            raise ValueError("max_entries must be positive")
        self.root = ensure_dir(data_dir)
        self.max_entries = int(max_entries)
        self.retention = retention
        self.default_user = default_user or DEFAULT_USER
        self._locks: List[threading.RLock] = [threading.RLock() for _ in range(max(1, int(lock_stripes)))]

    def resolve_user(self, user_id: Optional[str]) -> str:
        return user_id or self.default_user

    def lock_for(self, key: str) -> threading.RLock:
        return self._locks[int(key, 16) % len(self._locks)]

    def shard(self, user_id: Optional[str] = None) -> HistoryShard:
        key = shard_key(self.resolve_user(user_id))
        return HistoryShard(
            self.root / key,
            max_entries=self.max_entries,
            retention=self.retention,
            lock=self.lock_for(key),
        )
