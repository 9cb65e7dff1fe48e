"""Market data models.

PricePoint is on the hot path (hundreds per asset per cycle) so it uses a
slotted dataclass with plain floats. AssetSummary is a Pydantic model because
it crosses the API boundary and the persistence boundary.
"""

import math
from dataclasses import dataclass
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, Field


@dataclass(slots=True, frozen=True)
class PricePoint:
    """Single price observation.

    Uses epoch milliseconds for time, matching the upstream feed.
    """

    timestamp: int  # epoch ms
    price: float


@dataclass(slots=True, frozen=True)
class PriceSeries:
    """Ordered price history for one asset over a fixed lookback window.

    Immutable once fetched for a cycle. Ordering is ascending by timestamp as
    delivered by the feed; duplicates are not rejected.
    """

    asset_id: str
    points: tuple[PricePoint, ...] = ()

    @property
    def prices(self) -> list[float]:
        """Get the ordered list of prices."""
        return [p.price for p in self.points]

    @property
    def latest_price(self) -> float | None:
        """Get the most recent price, if any."""
        if not self.points:
            return None
        return self.points[-1].price

    def __len__(self) -> int:
        return len(self.points)


class AssetSummary(BaseModel):
    """Snapshot row for one asset from the market listing."""

    model_config = ConfigDict(frozen=True)

    id: str
    symbol: str
    name: str = ""
    current_price: float = Field(ge=0)
    pct_change_1h: float | None = None

    @property
    def display_name(self) -> str:
        """Name used in advisory prompts (falls back to the symbol)."""
        return self.name or self.symbol.upper()


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def point_from_row(row: Any) -> PricePoint:
    """Build a PricePoint from one ``[epoch_ms, price]`` row.

    Raises:
        ValueError: If the row is not a pair of finite numbers with price >= 0
    """
    if not isinstance(row, (list, tuple)) or len(row) < 2:
        raise ValueError(f"malformed price point: {row!r}")
    timestamp, price = row[0], row[1]
    if not _is_number(timestamp) or not _is_number(price) or price < 0:
        raise ValueError(f"malformed price point: {row!r}")
    return PricePoint(timestamp=int(timestamp), price=float(price))


def series_from_payload(asset_id: str, payload: dict[str, Any]) -> PriceSeries:
    """Build a PriceSeries from a ``{"prices": [[ts, price], ...]}`` payload.

    Args:
        asset_id: Asset the history belongs to
        payload: Raw market chart payload

    Returns:
        PriceSeries in feed order

    Raises:
        ValueError: If the price list is missing or any point is malformed
    """
    rows = payload.get("prices", []) if isinstance(payload, dict) else None
    if not isinstance(rows, list):
        raise ValueError("payload has no price list")
    points = tuple(point_from_row(row) for row in rows)
    return PriceSeries(asset_id=asset_id, points=points)



def assets_from_payload(payload: Sequence[dict[str, Any]]) -> list[AssetSummary]:
    """Build AssetSummary rows from a raw market listing payload.

    Accepts both the upstream field names and the names produced by
    ``AssetSummary.model_dump()`` so persisted lists round-trip.
    """
    assets = []
    for row in payload:
        pct = row.get("pct_change_1h", row.get("price_change_percentage_1h_in_currency"))
        assets.append(
            AssetSummary(
                id=row["id"],
                symbol=row["symbol"],
                name=row.get("name") or "",
                current_price=float(row["current_price"]),
                pct_change_1h=float(pct) if pct is not None else None,
            )
        )
    return assets
