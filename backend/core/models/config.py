"""Indicator and decision configuration models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class IndicatorConfig(BaseModel):
    """Indicator periods."""

    rsi_period: int = Field(default=14, gt=0)
    bollinger_period: int = Field(default=20, gt=0)
    bollinger_width: float = 2.0  # Bands at mean +/- width * stddev

    # MACD legs
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9


class FusionConfig(BaseModel):
    """Thresholds for the local decision rules and alerting.

    Downstream consumers were tuned against these exact values.
    """

    # RSI thresholds
    rsi_oversold: float = 30.0  # rsi < oversold -> Buy
    rsi_overbought: float = 70.0  # rsi > overbought -> Sell

    # Confidence assigned by the local rules
    triggered_confidence: int = 75
    neutral_confidence: int = 50

    # Price targets (as ratio of current price)
    stop_loss_ratio: float = 0.99
    take_profit_buy_ratio: float = 1.02
    take_profit_sell_ratio: float = 0.98

    # Alert when confidence is strictly above this value
    alert_confidence_threshold: int = 80
