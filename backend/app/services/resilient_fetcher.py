"""Resilient fetcher: network call with timeout, offline check and cache fallback.

Flow for ``fetch(source, cache_key)``:
1. Offline -> any cached value for the key (age ignored), else OfflineError.
2. Online -> run the source with a hard timeout.
   - Success: cache the payload (resets its TTL) and return it.
   - Failure: any cached value for the key (age ignored), else DataUnavailable.

Failed calls never write to the cache. Every cached answer is flagged as
degraded on the returned FetchResult, logged, and counted in FetcherStats.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

import httpx

from app.services.connectivity import ConnectivityMonitor
from app.storage.ttl_cache import TTLCache
from core.errors import DataUnavailable, OfflineError, UpstreamFailure

logger = logging.getLogger(__name__)

# Zero-argument coroutine factory performing one network call
FetchSource = Callable[[], Awaitable[Any]]

# Exceptions that count as a failed network call
FETCH_ERRORS = (httpx.HTTPError, UpstreamFailure, asyncio.TimeoutError, ValueError)


class FetchOrigin(str, Enum):
    """Where a payload came from."""

    NETWORK = "network"
    CACHE_FALLBACK = "cache_fallback"  # Network failed, cached value served
    OFFLINE_CACHE = "offline_cache"  # Offline, cached value served


@dataclass
class FetchResult:
    """Payload plus provenance.

    Attributes:
        payload: JSON-serializable data.
        origin: Network or one of the cache fallbacks.
        stored_at: Cache write time (epoch ms) for cached payloads.
        error: Failure that triggered the fallback, if any.
    """

    payload: Any
    origin: FetchOrigin = FetchOrigin.NETWORK
    stored_at: int | None = None
    error: str | None = None

    @property
    def degraded(self) -> bool:
        """True when the payload did not come from a fresh network call."""
        return self.origin != FetchOrigin.NETWORK


@dataclass
class FetcherStats:
    """Counters for degraded-mode observability."""

    network: int = 0
    cache_fallback: int = 0
    offline_cache: int = 0
    unavailable: int = 0
    last_degraded: dict[str, str] = field(default_factory=dict)  # key -> origin

    def record(self, key: str, origin: FetchOrigin) -> None:
        if origin == FetchOrigin.NETWORK:
            self.network += 1
            self.last_degraded.pop(key, None)
        elif origin == FetchOrigin.CACHE_FALLBACK:
            self.cache_fallback += 1
            self.last_degraded[key] = origin.value
        else:
            self.offline_cache += 1
            self.last_degraded[key] = origin.value

    def as_dict(self) -> dict[str, Any]:
        return {
            "network": self.network,
            "cache_fallback": self.cache_fallback,
            "offline_cache": self.offline_cache,
            "unavailable": self.unavailable,
            "degraded_keys": dict(self.last_degraded),
        }


class ResilientFetcher:
    """Wraps network reads with timeout, connectivity check and cache fallback."""

    def __init__(
        self,
        cache: TTLCache,
        connectivity: ConnectivityMonitor | None = None,
        timeout: float = 5.0,
    ):
        self.cache = cache
        self.connectivity = connectivity or ConnectivityMonitor()
        self.timeout = timeout
        self.stats = FetcherStats()

    def _from_cache(
        self,
        cache_key: str,
        origin: FetchOrigin,
        error: str | None = None,
    ) -> FetchResult | None:
        entry = self.cache.get_entry(cache_key)
        if entry is None:
            return None

        self.stats.record(cache_key, origin)
        logger.warning(
            f"Using {'offline' if origin == FetchOrigin.OFFLINE_CACHE else 'cached'} data "
            f"for {cache_key} (stored_at={entry.stored_at})"
            + (f": {error}" if error else "")
        )
        return FetchResult(
            payload=entry.value,
            origin=origin,
            stored_at=entry.stored_at,
            error=error,
        )

    async def fetch(self, source: FetchSource, cache_key: str) -> FetchResult:
        """
        Fetch a payload with cache fallback.

        Args:
            source: Coroutine factory performing the network call
            cache_key: Cache key for this payload

        Returns:
            FetchResult (``degraded`` set when served from cache)

        Raises:
            OfflineError: Offline and nothing cached for the key
            DataUnavailable: Network call failed and nothing cached for the key
        """
        if not self.connectivity.is_online():
            cached = self._from_cache(cache_key, FetchOrigin.OFFLINE_CACHE)
            if cached is not None:
                return cached
            self.stats.unavailable += 1
            raise OfflineError(f"Offline and no cached data for {cache_key}", cache_key=cache_key)

        try:
            payload = await asyncio.wait_for(source(), timeout=self.timeout)
        except FETCH_ERRORS as e:
            if isinstance(e, httpx.ConnectError):
                self.connectivity.mark_offline(str(e))
            reason = _describe(e)

            cached = self._from_cache(cache_key, FetchOrigin.CACHE_FALLBACK, reason)
            if cached is not None:
                return cached

            self.stats.unavailable += 1
            raise DataUnavailable(
                f"Fetch failed for {cache_key} and nothing is cached: {reason}",
                cache_key=cache_key,
            ) from e

        self.connectivity.mark_online()
        self.cache.set(cache_key, payload)
        self.stats.record(cache_key, FetchOrigin.NETWORK)
        return FetchResult(payload=payload, origin=FetchOrigin.NETWORK)


def _describe(error: BaseException) -> str:
    """Short human-readable reason for a failed fetch."""
    if isinstance(error, asyncio.TimeoutError):
        return "timeout"
    if isinstance(error, UpstreamFailure):
        return error.message
    return f"{type(error).__name__}: {error}"
