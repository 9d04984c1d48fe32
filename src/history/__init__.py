"""Sharded per-user palette history."""

from .store import (
    DEFAULT_MAX_ENTRIES,
    DEFAULT_USER,
    RETENTION_BOUNDED,
    RETENTION_TRUNCATE_ON_READ,
    HistoryShard,
    HistoryStore,
    shard_key,
)

__all__ = [
    "DEFAULT_MAX_ENTRIES",
    "DEFAULT_USER",
    "RETENTION_BOUNDED",
    "RETENTION_TRUNCATE_ON_READ",
    "HistoryShard",
    "HistoryStore",
    "shard_key",
]
