"""Price source and market context built on the resilient fetcher.

Cache keys:
- coins          : market listing
- chart_{id}     : price history for one asset
- fng / news / gas: market context feeds
"""

import logging

from pydantic import BaseModel

from app.clients import CoinGeckoClient, MarketContextClient
from app.services.resilient_fetcher import FetchResult, ResilientFetcher
from core.errors import DataUnavailable, UpstreamFailure
from core.models import (
    AssetSummary,
    PriceSeries,
    assets_from_payload,
    series_from_payload,
)

logger = logging.getLogger(__name__)

KEY_MARKETS = "coins"
KEY_FEAR_GREED = "fng"
KEY_NEWS = "news"
KEY_GAS = "gas"


def chart_key(asset_id: str) -> str:
    """Get the cache key for an asset's price history."""
    return f"chart_{asset_id}"


class NewsItem(BaseModel):
    """One headline from the news feed."""

    title: str
    source: str = ""
    url: str | None = None


class MarketContext(BaseModel):
    """Market context shown next to the signals."""

    fear_greed: int | None = None
    fear_greed_label: str | None = None
    news: list[NewsItem] = []
    gas_price: int | None = None
    degraded: bool = False


class MarketDataService:
    """Price source port: market snapshot and price history.

    Both methods return the parsed models together with the FetchResult so
    callers can tell fresh data from cached data.
    """

    def __init__(
        self,
        fetcher: ResilientFetcher,
        client: CoinGeckoClient,
        page_size: int = 50,
        history_days: int = 1,
        history_interval: str | None = "5m",
    ):
        self.fetcher = fetcher
        self.client = client
        self.page_size = page_size
        self.history_days = history_days
        self.history_interval = history_interval

    async def get_market_snapshot(self) -> tuple[list[AssetSummary], FetchResult]:
        """
        Get the current market listing.

        Raises:
            DataUnavailable: No network data and nothing cached
        """
        result = await self.fetcher.fetch(
            lambda: self.client.get_markets(per_page=self.page_size),
            KEY_MARKETS,
        )
        return assets_from_payload(result.payload), result

    async def get_price_history(self, asset_id: str) -> tuple[PriceSeries, FetchResult]:
        """
        Get the price history for one asset over the configured window.

        Raises:
            DataUnavailable: No network data and nothing cached
            UpstreamFailure: Cached history no longer parses
        """
        try:
            result = await self.fetcher.fetch(
                lambda: self.client.get_market_chart(
                    asset_id, days=self.history_days, interval=self.history_interval
                ),
                chart_key(asset_id),
            )
        except DataUnavailable as e:
            e.asset_id = asset_id
            raise
        try:
            series = series_from_payload(asset_id, result.payload)
        except ValueError as e:
            raise UpstreamFailure(
                f"Price history for {asset_id} is malformed: {e}", asset_id=asset_id
            ) from e
        return series, result


class MarketContextService:
    """Fear & greed, news and gas price through the resilient fetcher.

    Each feed degrades independently to empty values; this service never raises
    DataUnavailable. A cached payload that no longer parses counts the same as
    a missing one.
    """

    def __init__(self, fetcher: ResilientFetcher, client: MarketContextClient, news_limit: int = 5):
        self.fetcher = fetcher
        self.client = client
        self.news_limit = news_limit

    async def _feed(self, context: MarketContext, fetch, key: str, parse, label: str) -> None:
        try:
            result = await self.fetcher.fetch(fetch, key)
            parse(context, result.payload)
            context.degraded |= result.degraded
        except DataUnavailable as e:
            logger.warning(f"{label} unavailable: {e.message}")
            context.degraded = True
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"{label} payload unusable: {e!r}")
            context.degraded = True

    def _parse_fear_greed(self, context: MarketContext, payload: dict) -> None:
        reading = payload["data"][0]
        context.fear_greed = int(reading["value"])
        context.fear_greed_label = reading.get("value_classification")

    def _parse_news(self, context: MarketContext, payload: dict) -> None:
        context.news = [
            NewsItem(
                title=post["title"],
                source=post.get("source_domain") or "",
                url=post.get("url"),
            )
            for post in payload["results"]
            if isinstance(post, dict) and isinstance(post.get("title"), str)
        ][: self.news_limit]

    def _parse_gas(self, context: MarketContext, payload: dict) -> None:
        price = payload["blockPrices"][0]["estimatedPrices"][0]["price"]
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            raise TypeError(f"gas price is not a number: {price!r}")
        context.gas_price = round(price)

    async def get_context(self) -> MarketContext:
        context = MarketContext()
        await self._feed(
            context, self.client.get_fear_greed, KEY_FEAR_GREED,
            self._parse_fear_greed, "Fear & greed",
        )
        await self._feed(context, self.client.get_news, KEY_NEWS, self._parse_news, "News")
        await self._feed(context, self.client.get_gas, KEY_GAS, self._parse_gas, "Gas price")
        return context
