"""Last-known-good asset list.

Holds the most recent successful market listing (top N rows) so the service
can keep generating signals, and the API can keep listing assets, while the
price feed is down. Survives restarts through the persistence boundary.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from app.storage.persistence import KEY_ASSETS, PersistentStore
from core.models import AssetSummary, assets_from_payload

logger = logging.getLogger(__name__)


class AssetStore:
    """Keeps the last-known asset list in memory and in persistence."""

    def __init__(self, store: PersistentStore | None = None, max_size: int = 20):
        self._store = store
        self.max_size = max_size
        self._assets: list[AssetSummary] = []

    @property
    def assets(self) -> list[AssetSummary]:
        return list(self._assets)

    def find(self, asset_id: str) -> AssetSummary | None:
        """Find an asset by identifier."""
        for asset in self._assets:
            if asset.id == asset_id:
                return asset
        return None

    async def save(self, assets: list[AssetSummary]) -> None:
        """Replace the list with the first ``max_size`` assets and persist it."""
        self._assets = list(assets[: self.max_size])
        if self._store is not None:
            await self._store.set_json(
                KEY_ASSETS, [a.model_dump() for a in self._assets]
            )

    async def load(self) -> list[AssetSummary]:
        """Load the persisted list (used at startup).

        Returns:
            The loaded list (empty if nothing persisted or unreadable)
        """
        if self._store is None:
            return self.assets

        data = await self._store.get_json(KEY_ASSETS)
        if not data:
            return self.assets

        try:
            self._assets = assets_from_payload(data)[: self.max_size]
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable last-known asset list: {e}")
            return self.assets

        logger.info(f"Loaded {len(self._assets)} last-known assets")
        return self.assets
