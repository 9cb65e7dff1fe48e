"""In-memory TTL cache backing every network read.

Entries are timestamped on write. ``get`` hides entries older than the TTL,
but they are never removed: the resilient fetcher reads them through
``get_entry`` when the network is down, however old they are.

The key space is small and fixed (market listing, one chart per tracked
asset, context feeds), so there is no eviction.

Writes are tracked as dirty keys and flushed to the persistence boundary
in batches by a background task, so ``set`` never suspends.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from app.storage.persistence import KEY_CACHE, PersistentStore

logger = logging.getLogger(__name__)

# Default TTL (60 seconds - market data becomes stale quickly)
DEFAULT_TTL_MS = 60_000


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(slots=True, frozen=True)
class CacheEntry:
    """Cached payload with its write time."""

    key: str
    value: Any  # JSON-serializable
    stored_at: int  # epoch ms

    def age_ms(self, now: int) -> int:
        return now - self.stored_at


class TTLCache:
    """Key-value store with staleness check.

    Args:
        ttl_ms: Maximum age before ``get`` treats an entry as absent
        clock: Returns current time in epoch ms (injectable for tests)
    """

    def __init__(
        self,
        ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], int] = now_ms,
    ):
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._dirty: set[str] = set()

    def get(self, key: str) -> Any | None:
        """Get a fresh value.

        Returns:
            The stored value, or None if missing or older than the TTL
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.age_ms(self._clock()) > self.ttl_ms:
            return None
        return entry.value

    def set(self, key: str, value: Any) -> None:
        """Store a value, overwriting any previous entry and resetting its age."""
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock())
        self._dirty.add(key)

    def get_entry(self, key: str) -> CacheEntry | None:
        """Get the raw entry regardless of age (fallback reads)."""
        return self._entries.get(key)

    def is_fresh(self, key: str) -> bool:
        """Check if a key has an entry within the TTL."""
        return self.get(key) is not None

    def keys(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # =========================================================================
    # Persistence
    # =========================================================================

    @property
    def dirty_count(self) -> int:
        return len(self._dirty)

    async def flush(self, store: PersistentStore) -> int:
        """Write entries changed since the last flush to the persistent store.

        The dirty set is snapshotted and cleared before the write so entries
        updated during the round-trip are picked up by the next flush.

        Returns:
            Number of entries written (0 when the store is unavailable)
        """
        if not self._dirty or not store.is_available:
            return 0

        keys = list(self._dirty)
        self._dirty.clear()
        mapping = {
            f"{KEY_CACHE}{key}": {"value": entry.value, "stored_at": entry.stored_at}
            for key in keys
            if (entry := self._entries.get(key)) is not None
        }

        if not await store.mset_json(mapping):
            # Retry on the next flush
            self._dirty.update(keys)
            return 0

        logger.debug(f"Flushed {len(mapping)} cache entries")
        return len(mapping)

    async def restore(self, store: PersistentStore) -> int:
        """Load persisted entries, keeping their original write times.

        Entries already present in memory are not overwritten.

        Returns:
            Number of entries restored
        """
        persisted = await store.scan_json(KEY_CACHE)
        restored = 0
        for key, data in persisted.items():
            if key in self._entries:
                continue
            if not isinstance(data, dict) or "value" not in data or "stored_at" not in data:
                logger.warning(f"Skipping malformed persisted cache entry {key}")
                continue
            self._entries[key] = CacheEntry(
                key=key, value=data["value"], stored_at=int(data["stored_at"])
            )
            restored += 1

        if restored:
            logger.info(f"Restored {restored} cache entries from persistence")
        return restored
