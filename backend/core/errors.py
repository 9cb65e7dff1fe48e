"""Error hierarchy for the signal pipeline.

Failures are scoped to a single asset and a single cycle. The refresh loop
catches ``SignalPipelineError`` per asset so one bad feed never stops the
others. ``MalformedAdvisory`` never leaves the advisory adapter.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class SignalPipelineError(Exception):
    """Base exception for all signal pipeline errors."""

    def __init__(
        self,
        message: str,
        asset_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.asset_id = asset_id
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "asset_id": self.asset_id,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class UpstreamFailure(SignalPipelineError):
    """Non-success response, timeout or unusable body from a remote source."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, **kwargs)


class DataUnavailable(SignalPipelineError):
    """No network data and no cached fallback for a key."""

    def __init__(self, message: str, cache_key: str, **kwargs: Any) -> None:
        self.cache_key = cache_key
        super().__init__(message, **kwargs)
        self.details.setdefault("cache_key", cache_key)


class OfflineError(DataUnavailable):
    """Runtime reports no connectivity and nothing is cached for the key."""


class MalformedAdvisory(SignalPipelineError):
    """Advisory reply present but not parseable into the required fields."""


class InsufficientData(SignalPipelineError):
    """Price series too short to derive any indicator."""
