"""Indicator snapshot and trade signal models."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Decision(str, Enum):
    """Trade decision."""

    BUY = "Buy"
    SELL = "Sell"
    HOLD = "Hold"


class SignalSource(str, Enum):
    """Where the decision came from."""

    ADVISORY = "advisory"  # Remote advisory adopted verbatim
    LOCAL = "local"  # Deterministic RSI rules


class BollingerBands(BaseModel):
    """Bollinger envelope for the latest window."""

    model_config = ConfigDict(frozen=True)

    upper: float
    middle: float
    lower: float

    @model_validator(mode="after")
    def _check_order(self) -> "BollingerBands":
        if not (self.upper >= self.middle >= self.lower):
            raise ValueError(
                f"bands out of order: upper={self.upper} middle={self.middle} lower={self.lower}"
            )
        return self

    @property
    def width(self) -> float:
        """Distance between upper and lower band."""
        return self.upper - self.lower


class Indicators(BaseModel):
    """Indicator values derived from one price series.

    Recomputed every cycle; never persisted.
    """

    model_config = ConfigDict(frozen=True)

    rsi: float = Field(ge=0, le=100)
    macd_histogram: float
    bollinger: BollingerBands


class Signal(BaseModel):
    """Latest trade signal for an asset.

    One per asset, overwritten every cycle. ``degraded`` is set when the
    series behind the signal came from cache instead of the network.
    """

    model_config = ConfigDict(frozen=True)

    asset_id: str
    symbol: str = ""
    decision: Decision
    confidence: int = Field(ge=0, le=100)
    entry_price: float
    stop_loss: float
    take_profit: float
    explanation: str = ""
    source: SignalSource = SignalSource.LOCAL
    degraded: bool = False
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def risk_amount(self) -> float:
        """Distance from entry to stop loss."""
        return abs(self.entry_price - self.stop_loss)

    @property
    def reward_amount(self) -> float:
        """Distance from entry to take profit."""
        return abs(self.take_profit - self.entry_price)
