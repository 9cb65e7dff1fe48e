"""Business services."""

from app.services.connectivity import ConnectivityMonitor
from app.services.resilient_fetcher import (
    FetchOrigin,
    FetchResult,
    FetcherStats,
    ResilientFetcher,
)
from app.services.market_data import (
    MarketContext,
    MarketContextService,
    MarketDataService,
    NewsItem,
    chart_key,
)
from app.services.signal_service import CycleReport, SignalService
from core.signal_generator import SignalGenerator

__all__ = [
    "ConnectivityMonitor",
    "FetchOrigin",
    "FetchResult",
    "FetcherStats",
    "ResilientFetcher",
    "MarketContext",
    "MarketContextService",
    "MarketDataService",
    "NewsItem",
    "chart_key",
    "CycleReport",
    "SignalService",
    "SignalGenerator",
]
