"""Technical indicators for signal generation.

Every function returns the value for the latest bar only, computed from an
ordered float sequence. Pure and deterministic; safe to call concurrently.

Two simplifications the decision thresholds depend on:
- EMA is seeded from the first element, not from an SMA of the first period.
- The MACD signal line is an EMA over a single value, which returns that value
  unchanged, so the histogram collapses to zero.
"""

from typing import Sequence

import numpy as np

from core.errors import InsufficientData
from core.models import BollingerBands, IndicatorConfig, Indicators

NEUTRAL_RSI = 50.0
MAX_RSI = 100.0


def rsi(values: Sequence[float], period: int = 14) -> float:
    """
    Calculate Relative Strength Index over the last ``period`` transitions.

    Uses simple averages of gains and losses (no Wilder smoothing).

    Args:
        values: Sequence of prices, oldest first
        period: Number of price changes to average

    Returns:
        RSI in [0, 100]; 50 when there are not enough points,
        100 when there were no losses
    """
    if len(values) < period + 1:
        return NEUTRAL_RSI

    window = np.asarray(values[-(period + 1):], dtype=np.float64)
    deltas = np.diff(window)

    gains = float(deltas[deltas > 0].sum())
    losses = float(-deltas[deltas < 0].sum())

    avg_gain = gains / period
    avg_loss = losses / period
    if avg_loss == 0:
        return MAX_RSI

    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def ema(values: Sequence[float], period: int) -> float:
    """
    Calculate Exponential Moving Average of the whole series.

    Args:
        values: Sequence of prices, oldest first
        period: EMA period

    Returns:
        Latest EMA value; the last element when the series is shorter
        than ``period``

    Raises:
        ValueError: If the series is empty
    """
    if len(values) == 0:
        raise ValueError("EMA of an empty series")
    if len(values) < period:
        return float(values[-1])

    multiplier = 2.0 / (period + 1)
    result = float(values[0])
    for price in values[1:]:
        result = (float(price) - result) * multiplier + result
    return result


def macd_histogram(
    values: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> float:
    """
    Calculate the MACD histogram (macd - signal line).

    The signal line is the EMA of the single latest MACD value, which
    degenerates to that value; see the module docstring.

    Args:
        values: Sequence of prices, oldest first
        fast: Fast EMA period
        slow: Slow EMA period
        signal: Signal line EMA period

    Returns:
        Histogram value (signed)
    """
    macd = ema(values, fast) - ema(values, slow)
    signal_line = ema([macd], signal)
    return macd - signal_line


def bollinger(
    values: Sequence[float],
    period: int = 20,
    width: float = 2.0,
) -> BollingerBands:
    """
    Calculate Bollinger Bands over the last ``period`` values.

    Uses population variance. With fewer than ``period`` points the bands
    collapse onto the first price.

    Args:
        values: Sequence of prices, oldest first
        period: Lookback window
        width: Standard deviation multiplier

    Returns:
        BollingerBands with upper >= middle >= lower

    Raises:
        ValueError: If the series is empty
    """
    if len(values) == 0:
        raise ValueError("Bollinger bands of an empty series")
    if len(values) < period:
        first = float(values[0])
        return BollingerBands(upper=first, middle=first, lower=first)

    window = np.asarray(values[-period:], dtype=np.float64)
    middle = float(np.mean(window))
    std = float(np.std(window))  # ddof=0 -> population

    return BollingerBands(
        upper=middle + width * std,
        middle=middle,
        lower=middle - width * std,
    )


# =============================================================================
# IndicatorCalculator class
# =============================================================================

class IndicatorCalculator:
    """Calculator for all indicators consumed by decision fusion."""

    def __init__(self, config: IndicatorConfig | None = None):
        self.config = config or IndicatorConfig()

    def calculate(self, prices: Sequence[float]) -> Indicators:
        """
        Calculate all indicators for the latest bar.

        Args:
            prices: Ordered price list

        Returns:
            Indicators snapshot

        Raises:
            InsufficientData: If the series is empty
        """
        if len(prices) == 0:
            raise InsufficientData("Cannot compute indicators for an empty series")

        cfg = self.config
        return Indicators(
            rsi=rsi(prices, cfg.rsi_period),
            macd_histogram=macd_histogram(
                prices, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal
            ),
            bollinger=bollinger(prices, cfg.bollinger_period, cfg.bollinger_width),
        )
