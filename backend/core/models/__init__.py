"""Data models."""

from core.models.market import (
    AssetSummary,
    PricePoint,
    PriceSeries,
    assets_from_payload,
    series_from_payload,
)
from core.models.signal import (
    BollingerBands,
    Decision,
    Indicators,
    Signal,
    SignalSource,
)
from core.models.advisory import (
    REQUIRED_FIELDS,
    AdvisoryRequest,
    AdvisoryResponse,
    AdvisoryResult,
    AdvisoryStatus,
)
from core.models.config import FusionConfig, IndicatorConfig

__all__ = [
    # Market data
    "AssetSummary",
    "PricePoint",
    "PriceSeries",
    "assets_from_payload",
    "series_from_payload",
    # Signals
    "BollingerBands",
    "Decision",
    "Indicators",
    "Signal",
    "SignalSource",
    # Advisory
    "REQUIRED_FIELDS",
    "AdvisoryRequest",
    "AdvisoryResponse",
    "AdvisoryResult",
    "AdvisoryStatus",
    # Config
    "FusionConfig",
    "IndicatorConfig",
]
