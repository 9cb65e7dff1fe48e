"""End-to-end integration tests.

Tests the complete data flow with real components and mocked HTTP transports:
1. Data flow: listing -> price history -> indicators -> decision -> store -> listeners
2. Graceful degradation: network loss after a warm cache keeps signals flowing
3. Advisory fusion: parsed advisory adopted, rate limit falls back to local rules
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.bootstrap import build_services, close_services, restore_state
from app.clients import AdvisoryClient, CoinGeckoClient
from app.config import Settings
from app.services import (
    ConnectivityMonitor,
    MarketDataService,
    ResilientFetcher,
    SignalService,
)
from app.storage import AssetStore, SignalStore, TTLCache
from core.models import Decision, SignalSource
from core.signal_generator import SignalGenerator

PRICES = [100, 102, 101, 105, 110, 108, 112, 115, 113, 118, 120, 117, 122, 125, 123]
EXPECTED_RSI = 76.744186

MARKETS = [
    {"id": "bitcoin", "symbol": "btc", "name": "Bitcoin", "current_price": 123.0},
    {"id": "ethereum", "symbol": "eth", "name": "Ethereum", "current_price": 50.0},
]


class FakeUpstream:
    """Price feed that can be switched off."""

    def __init__(self):
        self.online = True
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if not self.online:
            raise httpx.ConnectError("network down", request=request)
        if request.url.path.endswith("/coins/markets"):
            return httpx.Response(200, json=MARKETS)
        if request.url.path.endswith("/market_chart"):
            prices = PRICES if "/bitcoin/" in request.url.path else list(reversed(PRICES))
            return httpx.Response(
                200, json={"prices": [[i * 300_000, p] for i, p in enumerate(prices)]}
            )
        return httpx.Response(404)


def build_pipeline(upstream, advisory_handler=None, on_alert=None, on_notice=None):
    cache = TTLCache()
    fetcher = ResilientFetcher(cache, ConnectivityMonitor(retry_after=0.0))
    client = CoinGeckoClient("https://prices.test/api/v3", transport=httpx.MockTransport(upstream))
    market_data = MarketDataService(fetcher, client)

    advisory = None
    if advisory_handler is not None:
        advisory = AdvisoryClient(
            "https://inference.test/model",
            transport=httpx.MockTransport(advisory_handler),
        ).request_advisory

    store = SignalStore()
    generator = SignalGenerator(
        request_advisory=advisory,
        save_signal=store.upsert,
        on_alert=on_alert,
        on_notice=on_notice,
    )
    service = SignalService(market_data, generator, AssetStore(), signal_asset_count=2)
    return service, store, fetcher


class TestDataFlowIntegration:
    """Test complete data flow from feed to store."""

    @pytest.mark.asyncio
    async def test_local_rules_end_to_end(self):
        """Test the hand-computed RSI drives a Sell at the listing price."""
        service, store, _ = build_pipeline(FakeUpstream())

        report = await service.refresh_once()

        assert report.generated == 2
        btc = store.get("bitcoin")
        assert btc.decision == Decision.SELL
        assert btc.confidence == 75
        assert btc.entry_price == 123.0
        assert btc.stop_loss == pytest.approx(123.0 * 0.99)
        assert btc.take_profit == pytest.approx(123.0 * 0.98)
        assert btc.explanation == f"RSI: {EXPECTED_RSI:.1f}"
        assert not btc.degraded

        # Reversed series: gains and losses swap, RSI = 100 - 76.74
        eth = store.get("ethereum")
        assert eth.decision == Decision.BUY
        assert eth.confidence == 75
        assert eth.take_profit == pytest.approx(50.0 * 1.02)

    @pytest.mark.asyncio
    async def test_listener_sees_stored_signals(self):
        """Test store listeners receive each signal."""
        service, store, _ = build_pipeline(FakeUpstream())
        listener = AsyncMock()
        store.on_update(listener)

        await service.refresh_once()
        await service.generator.drain_alerts()

        await asyncio.sleep(0)
        assert listener.await_count == 2


class TestGracefulDegradation:
    """Test the pipeline keeps working from cache."""

    @pytest.mark.asyncio
    async def test_network_loss_after_warm_cache(self):
        """Test a second cycle without network serves cached data, flagged degraded."""
        upstream = FakeUpstream()
        service, store, fetcher = build_pipeline(upstream)

        await service.refresh_once()
        first = store.get("bitcoin")

        upstream.online = False
        report = await service.refresh_once()

        assert report.generated == 2
        assert report.degraded == 2
        second = store.get("bitcoin")
        assert second.degraded
        assert second.decision == first.decision
        assert fetcher.stats.cache_fallback + fetcher.stats.offline_cache >= 3

    @pytest.mark.asyncio
    async def test_cold_start_without_network(self):
        """Test a cycle with no network and no cache stores nothing."""
        upstream = FakeUpstream()
        upstream.online = False
        service, store, _ = build_pipeline(upstream)

        report = await service.refresh_once()

        assert report.generated == 0
        assert report.failed == 1
        assert len(store) == 0


class TestAdvisoryIntegration:
    """Test advisory fusion over HTTP."""

    @pytest.mark.asyncio
    async def test_advisory_adopted_and_alerted(self):
        """Test a confident advisory is stored and raises an alert."""
        reply = (
            'Analysis: {"decision": "Buy", "confidence": 88, "entry": 122.5, '
            '"stoploss": 120.0, "take_profit": 130.0}'
        )
        on_alert = AsyncMock()
        service, store, _ = build_pipeline(
            FakeUpstream(),
            advisory_handler=lambda r: httpx.Response(200, json=[{"generated_text": reply}]),
            on_alert=on_alert,
        )

        await service.refresh_once()
        await service.generator.drain_alerts()

        btc = store.get("bitcoin")
        assert btc.decision == Decision.BUY
        assert btc.source == SignalSource.ADVISORY
        assert btc.entry_price == 122.5
        assert btc.take_profit == 130.0
        assert on_alert.await_count == 2

    @pytest.mark.asyncio
    async def test_rate_limited_advisory(self):
        """Test HTTP 429 notifies and falls back to local rules."""
        notice = MagicMock()
        service, store, _ = build_pipeline(
            FakeUpstream(),
            advisory_handler=lambda r: httpx.Response(429),
            on_notice=notice,
        )

        await service.refresh_once()

        assert store.get("bitcoin").source == SignalSource.LOCAL
        assert store.get("bitcoin").decision == Decision.SELL
        notice.assert_called_with("AI rate limited")


class TestBootstrap:
    """Test service wiring without Redis."""

    @pytest.mark.asyncio
    async def test_build_and_close_without_persistence(self):
        """Test services start and stop when Redis is unreachable."""
        settings = Settings(
            _env_file=None,
            redis_url="redis://127.0.0.1:1/0",
            advisory_enabled=False,
            offline_mode=True,
        )
        services = build_services(settings)

        await restore_state(services)
        report = await services.signal_service.refresh_once()
        await close_services(services)

        assert not services.persistence.is_available
        assert report.generated == 0
        assert services.generator._request_advisory is None
