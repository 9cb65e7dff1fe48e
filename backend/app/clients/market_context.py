"""Client for market context feeds (fear & greed index, hot news, gas price)."""

from typing import Any

import httpx

from core.errors import UpstreamFailure


class MarketContextClient:
    """Fetches market context payloads from absolute URLs."""

    def __init__(
        self,
        fear_greed_url: str,
        news_url: str,
        gas_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.fear_greed_url = fear_greed_url
        self.news_url = news_url
        self.gas_url = gas_url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, url: str) -> Any:
        client = await self._get_client()
        response = await client.get(url)
        if not response.is_success:
            raise UpstreamFailure(
                f"GET {url} returned {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamFailure(f"GET {url} returned invalid JSON: {e}") from e

    async def get_fear_greed(self) -> dict[str, Any]:
        """
        Fetch the latest fear & greed reading.

        Returns:
            Raw payload with ``data[0].value`` and ``data[0].value_classification``
        """
        data = await self._get_json(self.fear_greed_url)
        rows = data.get("data") if isinstance(data, dict) else None
        if not rows or not isinstance(rows, list) or not isinstance(rows[0], dict):
            raise UpstreamFailure("Fear & greed payload has no reading")
        try:
            int(rows[0]["value"])
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamFailure(f"Fear & greed reading is not an integer: {e!r}") from e
        return data

    async def get_news(self) -> dict[str, Any]:
        """
        Fetch hot news posts.

        Posts without a string title are dropped.

        Returns:
            Payload with ``results`` as a list of posts
        """
        data = await self._get_json(self.news_url)
        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise UpstreamFailure("News payload has no results list")
        posts = [
            post for post in data["results"]
            if isinstance(post, dict) and isinstance(post.get("title"), str)
        ]
        return {"results": posts}

    async def get_gas(self) -> dict[str, Any]:
        """
        Fetch the current gas price estimate.

        Returns:
            Raw payload with ``blockPrices[0].estimatedPrices[0].price`` in gwei
        """
        data = await self._get_json(self.gas_url)
        try:
            price = data["blockPrices"][0]["estimatedPrices"][0]["price"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamFailure(f"Gas payload has no price estimate: {e!r}") from e
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            raise UpstreamFailure(f"Gas price is not a number: {price!r}")
        return data
