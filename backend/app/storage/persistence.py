"""Redis-backed persistence boundary.

Only two things survive a restart:
- TTL cache entries: {prefix}cache:{key} -> JSON {value, stored_at}
- Last-known asset list: {prefix}assets:last_known -> JSON list

Values are opaque JSON (serialized with orjson), no schema versioning.
If Redis is unreachable the store disables itself and every operation
becomes a no-op, so the service keeps running from memory.
"""

from __future__ import annotations

import logging
from typing import Any

import orjson
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

logger = logging.getLogger(__name__)


# =============================================================================
# Key prefixes for different data types
# =============================================================================

KEY_CACHE = "cache:"  # TTL cache entries: cache:{key}
KEY_ASSETS = "assets:last_known"  # Last-known-good asset list


class PersistentStore:
    """String-keyed JSON store on top of Redis."""

    def __init__(self, url: str, prefix: str = ""):
        self.url = url
        self.prefix = prefix
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None

    # =========================================================================
    # Connection management
    # =========================================================================

    async def connect(self) -> bool:
        """Open the connection pool.

        Returns:
            True if Redis answered PING
        """
        if self._client is not None:
            return True

        self._pool = ConnectionPool.from_url(
            self.url,
            max_connections=10,
            decode_responses=False,  # We handle encoding ourselves with orjson
        )
        self._client = redis.Redis(connection_pool=self._pool)

        try:
            await self._client.ping()
            logger.info(f"Redis connected: {self.url}")
            return True
        except (redis.ConnectionError, OSError) as e:
            logger.warning(f"Redis connection failed: {e}. Persistence will be disabled.")
            await self._reset()
            return False

    async def _reset(self) -> None:
        if self._client is not None:
            await self._client.aclose()
        if self._pool is not None:
            await self._pool.disconnect()
        self._client = None
        self._pool = None

    async def close(self) -> None:
        """Close the connection pool."""
        await self._reset()
        logger.info("Redis connection closed")

    @property
    def is_available(self) -> bool:
        """Check if persistence is available."""
        return self._client is not None

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    # =========================================================================
    # JSON operations (using orjson)
    # =========================================================================

    async def get_json(self, key: str) -> Any | None:
        """Get a JSON value.

        Args:
            key: Store key (without prefix)

        Returns:
            Deserialized object or None if missing/unavailable
        """
        if self._client is None:
            return None

        try:
            data = await self._client.get(self._key(key))
        except redis.RedisError as e:
            logger.warning(f"Redis GET error: {e}")
            return None

        if data is None:
            return None

        try:
            return orjson.loads(data)
        except orjson.JSONDecodeError as e:
            logger.warning(f"JSON decode error for key {key}: {e}")
            return None

    async def set_json(self, key: str, value: Any) -> bool:
        """Set a JSON value.

        Args:
            key: Store key (without prefix)
            value: Object to serialize and store

        Returns:
            True if successful, False otherwise
        """
        if self._client is None:
            return False

        try:
            data = orjson.dumps(value)
        except TypeError as e:
            logger.warning(f"JSON encode error for key {key}: {e}")
            return False

        try:
            await self._client.set(self._key(key), data)
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis SET error: {e}")
            return False

    async def mset_json(self, mapping: dict[str, Any]) -> bool:
        """Set multiple JSON values in one round-trip.

        Args:
            mapping: Dict of key -> object

        Returns:
            True if successful, False otherwise
        """
        if self._client is None or not mapping:
            return False

        try:
            encoded = {self._key(k): orjson.dumps(v) for k, v in mapping.items()}
        except TypeError as e:
            logger.warning(f"JSON encode error in batch: {e}")
            return False

        try:
            await self._client.mset(encoded)
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis MSET error: {e}")
            return False

    async def scan_json(self, prefix: str) -> dict[str, Any]:
        """Load every JSON value whose key starts with ``prefix``.

        Args:
            prefix: Key prefix (without the store prefix)

        Returns:
            Dict mapping key (with ``prefix`` stripped) to value
        """
        if self._client is None:
            return {}

        full_prefix = self._key(prefix)
        result: dict[str, Any] = {}

        try:
            async for raw_key in self._client.scan_iter(match=f"{full_prefix}*"):
                key = raw_key.decode() if isinstance(raw_key, bytes) else raw_key
                data = await self._client.get(key)
                if data is None:
                    continue
                try:
                    result[key[len(full_prefix):]] = orjson.loads(data)
                except orjson.JSONDecodeError:
                    logger.warning(f"Skipping undecodable value at {key}")
        except redis.RedisError as e:
            logger.warning(f"Redis SCAN error: {e}")

        return result

    # =========================================================================
    # Health check
    # =========================================================================

    async def get_info(self) -> dict:
        """Get connection info for the status endpoint."""
        if self._client is None:
            return {"status": "disconnected"}

        try:
            info = await self._client.info()
            return {
                "status": "connected",
                "redis_version": info.get("redis_version"),
                "used_memory_human": info.get("used_memory_human"),
            }
        except redis.RedisError as e:
            return {"status": "error", "error": str(e)}
