"""Technical indicators (pure math, no I/O)."""

from core.indicators.indicators import (
    MAX_RSI,
    NEUTRAL_RSI,
    rsi,
    ema,
    macd_histogram,
    bollinger,
    IndicatorCalculator,
)

__all__ = [
    "MAX_RSI",
    "NEUTRAL_RSI",
    "rsi",
    "ema",
    "macd_histogram",
    "bollinger",
    "IndicatorCalculator",
]
