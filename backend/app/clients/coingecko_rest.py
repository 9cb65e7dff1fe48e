"""CoinGecko REST API client for market listings and price history.

Methods return the raw JSON payload after checking its shape, so the
resilient fetcher can cache exactly what it received and a malformed body
counts as a failed fetch.
"""

from typing import Any

import httpx
from pydantic import ValidationError

from core.errors import UpstreamFailure
from core.models import assets_from_payload, series_from_payload


class CoinGeckoClient:
    """CoinGecko v3 REST API client."""

    BASE_URL = "https://api.coingecko.com/api/v3"

    def __init__(
        self,
        base_url: str = BASE_URL,
        vs_currency: str = "usd",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.vs_currency = vs_currency
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self, method: str, endpoint: str, params: dict[str, Any] | None = None
    ) -> Any:
        """Make an API request and decode the JSON body.

        Raises:
            UpstreamFailure: On non-2xx status or undecodable body
            httpx.HTTPError: On transport errors and timeouts
        """
        client = await self._get_client()
        response = await client.request(method, endpoint, params=params)
        if not response.is_success:
            raise UpstreamFailure(
                f"{method} {endpoint} returned {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamFailure(f"{method} {endpoint} returned invalid JSON: {e}") from e

    async def get_markets(self, per_page: int = 50, page: int = 1) -> list[dict[str, Any]]:
        """
        Fetch the market listing ordered by market cap.

        Args:
            per_page: Rows per page (max 250)
            page: Page number

        Returns:
            Raw rows with at least id, symbol, name, current_price
        """
        params = {
            "vs_currency": self.vs_currency,
            "per_page": min(per_page, 250),
            "page": page,
            "price_change_percentage": "1h",
        }
        data = await self._request("GET", "/coins/markets", params)

        if not isinstance(data, list):
            raise UpstreamFailure("Market listing is not a list")
        try:
            assets_from_payload(data)
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise UpstreamFailure(f"Market listing has unexpected rows: {e}") from e

        return data

    async def get_market_chart(
        self,
        asset_id: str,
        days: int = 1,
        interval: str | None = "5m",
    ) -> dict[str, Any]:
        """
        Fetch price history for one asset.

        Args:
            asset_id: CoinGecko coin id (e.g., "bitcoin")
            days: Lookback window in days
            interval: Sampling interval (None lets the API choose)

        Returns:
            Raw payload with ``prices`` as [[epoch_ms, price], ...]
        """
        params: dict[str, Any] = {"vs_currency": self.vs_currency, "days": days}
        if interval:
            params["interval"] = interval

        data = await self._request("GET", f"/coins/{asset_id}/market_chart", params)

        prices = data.get("prices") if isinstance(data, dict) else None
        if not isinstance(prices, list):
            raise UpstreamFailure(
                f"Market chart for {asset_id} has no price list", asset_id=asset_id
            )
        try:
            series_from_payload(asset_id, data)
        except ValueError as e:
            raise UpstreamFailure(
                f"Market chart for {asset_id} has a malformed point: {e}",
                asset_id=asset_id,
            ) from e

        return {"prices": prices}

