"""Upstream clients."""

from app.clients.coingecko_rest import CoinGeckoClient
from app.clients.advisory_client import AdvisoryClient
from app.clients.market_context import MarketContextClient

__all__ = [
    "CoinGeckoClient",
    "AdvisoryClient",
    "MarketContextClient",
]
