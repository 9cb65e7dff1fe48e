"""Advisory request/response contract.

The advisory source is best-effort. Callers only ever see an
``AdvisoryResult`` tagged as parsed, not available or rate limited.
"""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.models.signal import Decision

# Schema sent alongside every request so the model knows which fields to emit
REQUIRED_FIELDS: dict[str, str] = {
    "decision": "Buy|Sell|Hold",
    "confidence": "0-100",
    "entry": "number",
    "stoploss": "number",
}


class AdvisoryRequest(BaseModel):
    """Inputs shared with the advisory source."""

    model_config = ConfigDict(frozen=True)

    asset_name: str
    current_price: float
    rsi: float
    macd_histogram: float

    def to_prompt(self) -> dict:
        """Build the structured prompt body (data plus required schema)."""
        return {
            "data": {
                "coin": self.asset_name,
                "price": self.current_price,
                "rsi": self.rsi,
                "macd": self.macd_histogram,
            },
            "required": REQUIRED_FIELDS,
        }


class AdvisoryResponse(BaseModel):
    """Structured fields extracted from an advisory reply."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    decision: Decision
    confidence: int = Field(ge=0, le=100)
    entry: float = Field(gt=0)
    stoploss: float = Field(gt=0)
    take_profit: float | None = None
    explanation: str | None = None

    @field_validator("decision", mode="before")
    @classmethod
    def _normalize_decision(cls, value):
        if isinstance(value, str):
            return value.strip().capitalize()
        return value


class AdvisoryStatus(str, Enum):
    """Tag for an advisory attempt."""

    PARSED = "parsed"
    NOT_AVAILABLE = "not_available"
    RATE_LIMITED = "rate_limited"


@dataclass
class AdvisoryResult:
    """Tagged result of one advisory attempt.

    Attributes:
        status: Outcome tag.
        response: Parsed advisory, only set when status is PARSED.
        reason: Short description of why no advisory was produced.
    """

    status: AdvisoryStatus
    response: AdvisoryResponse | None = None
    reason: str = ""

    @classmethod
    def parsed(cls, response: AdvisoryResponse) -> "AdvisoryResult":
        return cls(status=AdvisoryStatus.PARSED, response=response)

    @classmethod
    def not_available(cls, reason: str = "") -> "AdvisoryResult":
        return cls(status=AdvisoryStatus.NOT_AVAILABLE, reason=reason)

    @classmethod
    def rate_limited(cls) -> "AdvisoryResult":
        return cls(status=AdvisoryStatus.RATE_LIMITED, reason="rate limited")

    @property
    def is_parsed(self) -> bool:
        return self.status == AdvisoryStatus.PARSED and self.response is not None
