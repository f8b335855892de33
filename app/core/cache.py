"""In-memory TTL cache for admin dashboard views.

Entries live in named partitions (``leads``, ``analytics``) so a write that
touches one domain can drop every cached view of that domain without
affecting the other. Expiry is checked on read; stale entries stay in
storage until they are overwritten, invalidated or swept.

The store is owned by the application (see ``app.main.lifespan``) and
handed to the fetch coordinator; it is never a module-level singleton.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

# Default TTL in seconds (5 minutes)
DEFAULT_TTL = 300.0


class CachePartition(StrEnum):
    LEADS = "leads"
    ANALYTICS = "analytics"


@dataclass(frozen=True, slots=True)
class CacheEntry:
    data: Any
    timestamp: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def age(self, now: float) -> float:
        return now - self.timestamp

    def remaining(self, now: float) -> float:
        return max(self.expires_at - now, 0.0)


def derive_key(partition: str, view: str, params: Mapping[str, Any] | None = None) -> str:
    """Build the cache key for a view from its query parameters.

    ``None`` values count as "not supplied". Parameters are rendered as
    canonical JSON (sorted keys, compact separators), so equal parameter
    sets always produce equal keys and any differing value changes the key.
    """
    supplied = {name: value for name, value in (params or {}).items() if value is not None}
    if not supplied:
        return f"{partition}-{view}"
    encoded = json.dumps(supplied, sort_keys=True, separators=(",", ":"), default=str)
    return f"{partition}-{view}-{encoded}"


class CacheStore:
    """Partitioned key/value store with a fixed time-to-live per entry."""

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        partitions: Iterable[str] = tuple(CachePartition),
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl <= 0:
            raise ValueError("Cache TTL must be positive")
        self.ttl = ttl
        self._clock = clock
        self._partitions: dict[str, dict[str, CacheEntry]] = {str(p): {} for p in partitions}

    def now(self) -> float:
        return self._clock()

    @property
    def partitions(self) -> tuple[str, ...]:
        return tuple(self._partitions)

    def _partition(self, partition: str) -> dict[str, CacheEntry]:
        try:
            return self._partitions[str(partition)]
        except KeyError:
            raise KeyError(f"Unknown cache partition: {partition!r}") from None

    # ── Writes ───────────────────────────────────────────────

    def put(self, partition: str, key: str, data: Any) -> CacheEntry:
        """Store ``data`` under ``key``, replacing any previous entry."""
        now = self._clock()
        entry = CacheEntry(data=data, timestamp=now, expires_at=now + self.ttl)
        self._partition(partition)[key] = entry
        logger.debug("Cache put: %s/%s", partition, key)
        return entry

    def invalidate(self, partition: str, key: str) -> None:
        self._partition(partition).pop(key, None)

    def invalidate_partition(self, partition: str) -> int:
        """Drop every entry in one partition. Returns the number removed."""
        entries = self._partition(partition)
        removed = len(entries)
        entries.clear()
        logger.debug("Cache partition %s invalidated (%d entries)", partition, removed)
        return removed

    def clear(self) -> int:
        return sum(self.invalidate_partition(name) for name in self._partitions)

    def sweep_expired(self) -> int:
        """Remove entries whose ``expires_at`` has passed, in all partitions."""
        now = self._clock()
        removed = 0
        for entries in self._partitions.values():
            stale = [key for key, entry in entries.items() if entry.expires_at < now]
            for key in stale:
                del entries[key]
            removed += len(stale)
        if removed:
            logger.info("Cache sweep removed %d expired entries", removed)
        return removed

    # ── Reads (never mutate) ─────────────────────────────────

    def entry(self, partition: str, key: str) -> CacheEntry | None:
        """Raw entry lookup, expired or not."""
        return self._partition(partition).get(key)

    def get(self, partition: str, key: str) -> Any | None:
        """Return the cached payload if present and not expired, else None."""
        entry = self._partition(partition).get(key)
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry.data

    def is_valid(self, partition: str, key: str) -> bool:
        entry = self._partition(partition).get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def age(self, partition: str, key: str) -> float | None:
        entry = self.entry(partition, key)
        return None if entry is None else entry.age(self._clock())

    def time_remaining(self, partition: str, key: str) -> float | None:
        entry = self.entry(partition, key)
        return None if entry is None else entry.remaining(self._clock())

    def keys(self, partition: str) -> list[str]:
        return list(self._partition(partition))

    def snapshot(self) -> dict[str, dict[str, CacheEntry]]:
        """Shallow copy of every partition, for status reporting."""
        return {name: dict(entries) for name, entries in self._partitions.items()}

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._partitions.values())
