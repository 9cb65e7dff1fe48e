"""Tests for data models and errors."""

import pytest
from pydantic import ValidationError

from core.errors import DataUnavailable, OfflineError, SignalPipelineError
from core.models import (
    AdvisoryResponse,
    AdvisoryResult,
    AdvisoryStatus,
    AssetSummary,
    BollingerBands,
    Decision,
    Signal,
    assets_from_payload,
    series_from_payload,
)


class TestSignal:
    """Tests for the Signal model."""

    def test_signal_creation(self):
        """Test defaults of a new signal."""
        signal = Signal(
            asset_id="bitcoin",
            decision=Decision.BUY,
            confidence=75,
            entry_price=100.0,
            stop_loss=99.0,
            take_profit=102.0,
        )

        assert signal.source.value == "local"
        assert not signal.degraded
        assert signal.generated_at.tzinfo is not None

    def test_risk_reward_calculation(self):
        """Test risk and reward distances."""
        signal = Signal(
            asset_id="bitcoin",
            decision=Decision.SELL,
            confidence=75,
            entry_price=100.0,
            stop_loss=99.0,  # -1
            take_profit=98.0,  # -2
        )

        assert signal.risk_amount == pytest.approx(1.0)
        assert signal.reward_amount == pytest.approx(2.0)

    def test_confidence_bounds(self):
        """Test confidence outside 0..100 is rejected."""
        with pytest.raises(ValidationError):
            Signal(
                asset_id="bitcoin",
                decision=Decision.HOLD,
                confidence=101,
                entry_price=1.0,
                stop_loss=1.0,
                take_profit=1.0,
            )

    def test_immutable(self):
        """Test signals are frozen."""
        signal = Signal(
            asset_id="x", decision=Decision.HOLD, confidence=50,
            entry_price=1.0, stop_loss=1.0, take_profit=1.0,
        )
        with pytest.raises(ValidationError):
            signal.confidence = 90


class TestBollingerBands:
    """Tests for band ordering."""

    def test_out_of_order_rejected(self):
        with pytest.raises(ValidationError):
            BollingerBands(upper=1.0, middle=2.0, lower=0.5)


class TestAdvisoryModels:
    """Tests for advisory response and result."""

    def test_decision_normalized(self):
        resp = AdvisoryResponse(decision="  sell ", confidence=60, entry=10, stoploss=11)
        assert resp.decision == Decision.SELL

    def test_non_positive_prices_rejected(self):
        with pytest.raises(ValidationError):
            AdvisoryResponse(decision="Buy", confidence=60, entry=0, stoploss=1)

    def test_result_tags(self):
        assert AdvisoryResult.rate_limited().status == AdvisoryStatus.RATE_LIMITED
        assert not AdvisoryResult.not_available("x").is_parsed


class TestPayloadConverters:
    """Tests for raw payload conversion."""

    def test_series_from_payload(self):
        series = series_from_payload("bitcoin", {"prices": [[1000, 1.5], [2000, 2.5]]})

        assert len(series) == 2
        assert series.prices == [1.5, 2.5]
        assert series.points[0].timestamp == 1000
        assert series.latest_price == 2.5

    def test_empty_series(self):
        series = series_from_payload("bitcoin", {})
        assert len(series) == 0
        assert series.latest_price is None

    @pytest.mark.parametrize("row", [
        [1000, None],
        [1000, "1.5"],
        [1000, float("nan")],
        [1000, -1.0],
        [None, 1.5],
        [True, 1.5],
        [1000],
        "1000,1.5",
    ])
    def test_malformed_point_rejected(self, row):
        with pytest.raises(ValueError):
            series_from_payload("bitcoin", {"prices": [[0, 1.0], row]})

    def test_non_list_prices_rejected(self):
        with pytest.raises(ValueError):
            series_from_payload("bitcoin", {"prices": {"0": 1.0}})

    def test_assets_from_payload(self):
        rows = [{
            "id": "bitcoin",
            "symbol": "btc",
            "name": "Bitcoin",
            "current_price": 50_000,
            "price_change_percentage_1h_in_currency": -0.2,
        }]

        (asset,) = assets_from_payload(rows)

        assert asset == AssetSummary(
            id="bitcoin", symbol="btc", name="Bitcoin",
            current_price=50_000.0, pct_change_1h=-0.2,
        )
        assert asset.display_name == "Bitcoin"
        assert AssetSummary(id="x", symbol="xyz", current_price=1.0).display_name == "XYZ"


class TestErrors:
    """Tests for the error hierarchy."""

    def test_to_dict(self):
        error = DataUnavailable("nothing cached", cache_key="coins", asset_id="bitcoin")
        data = error.to_dict()

        assert data["error_type"] == "DataUnavailable"
        assert data["asset_id"] == "bitcoin"
        assert data["details"] == {"cache_key": "coins"}

    def test_hierarchy(self):
        error = OfflineError("offline", cache_key="coins")
        assert isinstance(error, DataUnavailable)
        assert isinstance(error, SignalPipelineError)
