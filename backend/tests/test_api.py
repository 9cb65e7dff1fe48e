"""Tests for REST routes and the WebSocket connection manager."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api import ConnectionManager, router
from app.services import MarketContext, ResilientFetcher, SignalService
from app.storage import AssetStore, PersistentStore, SignalStore, TTLCache
from core.models import AssetSummary, Decision, Signal, SignalSource
from core.signal_generator import SignalGenerator


def make_signal(asset_id: str, decision: Decision, confidence: int) -> Signal:
    return Signal(
        asset_id=asset_id,
        symbol=asset_id[:3],
        decision=decision,
        confidence=confidence,
        entry_price=100.0,
        stop_loss=99.0,
        take_profit=102.0,
        source=SignalSource.LOCAL,
    )


@pytest.fixture
def app():
    """App with state attached directly (no lifespan, no network)."""
    app = FastAPI()
    app.include_router(router, prefix="/api")

    signal_store = SignalStore()
    signal_store.upsert(make_signal("bitcoin", Decision.BUY, 75))
    signal_store.upsert(make_signal("ethereum", Decision.HOLD, 50))

    asset_store = AssetStore()
    asset_store._assets = [AssetSummary(id="bitcoin", symbol="btc", current_price=100.0)]

    service = SignalService(MagicMock(), SignalGenerator(), asset_store)
    service.trigger = MagicMock()

    context_service = MagicMock()
    context_service.get_context = AsyncMock(
        return_value=MarketContext(fear_greed=60, fear_greed_label="Greed")
    )

    app.state.signal_store = signal_store
    app.state.asset_store = asset_store
    app.state.signal_service = service
    app.state.fetcher = ResilientFetcher(TTLCache())
    app.state.context_service = context_service
    app.state.persistence = PersistentStore("redis://localhost:6379/0")
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


class TestRoutes:
    """Tests for REST routes."""

    def test_list_signals(self, client):
        response = client.get("/api/signals")

        assert response.status_code == 200
        data = response.json()
        assert {s["asset_id"] for s in data} == {"bitcoin", "ethereum"}
        assert data[0]["source"] == "local"

    def test_filter_signals(self, client):
        response = client.get("/api/signals", params={"decision": "buy"})
        assert [s["asset_id"] for s in response.json()] == ["bitcoin"]

        response = client.get("/api/signals", params={"min_confidence": 60})
        assert [s["asset_id"] for s in response.json()] == ["bitcoin"]

    def test_get_signal(self, client):
        response = client.get("/api/signals/bitcoin")

        assert response.status_code == 200
        body = response.json()
        assert body["decision"] == "Buy"
        assert body["confidence"] == 75
        assert body["stop_loss"] == 99.0

    def test_get_signal_missing(self, client):
        response = client.get("/api/signals/dogecoin")

        assert response.status_code == 404
        assert response.json()["detail"] == "Signal not found"

    def test_generate_signal(self, app, client):
        service = app.state.signal_service
        service.generate_for = AsyncMock(return_value=make_signal("bitcoin", Decision.SELL, 75))

        response = client.post("/api/signals/bitcoin")

        assert response.status_code == 200
        assert response.json()["decision"] == "Sell"
        (asset,), _ = service.generate_for.await_args
        assert asset.id == "bitcoin"

    def test_generate_signal_unknown_asset(self, app, client):
        app.state.signal_service.generate_for = AsyncMock()

        response = client.post("/api/signals/dogecoin")

        assert response.status_code == 404
        assert response.json()["detail"] == "Asset not found"
        app.state.signal_service.generate_for.assert_not_awaited()

    def test_generate_signal_no_data(self, app, client):
        app.state.signal_service.generate_for = AsyncMock(return_value=None)

        response = client.post("/api/signals/bitcoin")

        assert response.status_code == 503
        assert response.json()["detail"] == "No data for asset"

    def test_assets(self, client):

        response = client.get("/api/assets")
        assert [a["id"] for a in response.json()] == ["bitcoin"]

    def test_context(self, client):
        response = client.get("/api/context")

        body = response.json()
        assert body["fear_greed"] == 60
        assert body["news"] == []
        assert body["degraded"] is False

    def test_status(self, client):
        response = client.get("/api/status")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "running"
        assert body["connectivity"] == "online"
        assert body["signals"] == 2
        assert body["refresh_running"] is False
        assert body["persistence"] == {"status": "disconnected"}
        assert body["fetcher"]["cache_fallback"] == 0

    def test_status_degraded(self, app, client):
        app.state.fetcher.stats.last_degraded["coins"] = "cache_fallback"
        assert client.get("/api/status").json()["status"] == "degraded"

    def test_refresh_controls(self, app, client):
        service = app.state.signal_service

        assert client.post("/api/refresh").json()["success"] is True
        service.trigger.assert_called_once()

        client.post("/api/refresh/pause")
        assert service.is_paused
        client.post("/api/refresh/resume")
        assert not service.is_paused


class TestConnectionManager:
    """Tests for WebSocket broadcasting."""

    @staticmethod
    def make_socket():
        ws = MagicMock()
        ws.accept = AsyncMock()
        ws.send_text = AsyncMock()
        return ws

    @pytest.mark.asyncio
    async def test_send_signal(self):
        manager = ConnectionManager()
        ws = self.make_socket()
        await manager.connect(ws)

        assert manager.has_viewers()
        await manager.send_signal(make_signal("bitcoin", Decision.SELL, 75))

        message = orjson.loads(ws.send_text.call_args[0][0])
        assert message["type"] == "signal"
        assert message["data"]["asset_id"] == "bitcoin"
        assert message["data"]["decision"] == "Sell"

    @pytest.mark.asyncio
    async def test_send_alert(self):
        manager = ConnectionManager()
        ws = self.make_socket()
        await manager.connect(ws)

        await manager.send_alert(make_signal("bitcoin", Decision.BUY, 90))

        message = orjson.loads(ws.send_text.call_args[0][0])
        assert message["type"] == "alert"
        assert message["data"]["confidence"] == 90

    @pytest.mark.asyncio
    async def test_failed_socket_dropped(self):
        manager = ConnectionManager()
        good, bad = self.make_socket(), self.make_socket()
        bad.send_text.side_effect = RuntimeError("closed")
        await manager.connect(good)
        await manager.connect(bad)

        await manager.send_signal(make_signal("bitcoin", Decision.HOLD, 50))

        assert manager.connection_count == 1
        good.send_text.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_send_notice_delivered(self):
        manager = ConnectionManager()
        ws = self.make_socket()
        await manager.connect(ws)

        manager.send_notice("AI rate limited")
        assert len(manager._pending) == 1
        await manager.drain_notices()

        message = orjson.loads(ws.send_text.call_args[0][0])
        assert message["type"] == "notice"
        assert message["data"]["message"] == "AI rate limited"
        await asyncio.sleep(0)
        assert not manager._pending

    @pytest.mark.asyncio
    async def test_failed_notice_logged(self, caplog):
        manager = ConnectionManager()
        await manager.connect(self.make_socket())
        manager.broadcast = AsyncMock(side_effect=RuntimeError("encode failed"))

        with caplog.at_level(logging.WARNING, logger="app.api.websocket"):
            manager.send_notice("AI rate limited")
            await manager.drain_notices()
            await asyncio.sleep(0)

        assert "Notice broadcast failed" in caplog.text
        assert not manager._pending


    def test_notice_without_viewers(self):
        manager = ConnectionManager()
        assert not manager.has_viewers()
        # No clients: returns without needing an event loop
        manager.send_notice("AI rate limited")
