"""Data storage layer."""

from app.storage.persistence import KEY_ASSETS, KEY_CACHE, PersistentStore
from app.storage.ttl_cache import DEFAULT_TTL_MS, CacheEntry, TTLCache, now_ms
from app.storage.signal_store import SignalListener, SignalStore
from app.storage.asset_store import AssetStore

__all__ = [
    "KEY_ASSETS",
    "KEY_CACHE",
    "PersistentStore",
    "DEFAULT_TTL_MS",
    "CacheEntry",
    "TTLCache",
    "now_ms",
    "SignalListener",
    "SignalStore",
    "AssetStore",
]
