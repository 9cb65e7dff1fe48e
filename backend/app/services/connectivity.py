"""Runtime connectivity signal for the resilient fetcher.

A server has no browser-style online flag, so connectivity is inferred:
a connection-level failure marks the runtime offline, and after
``retry_after`` seconds the next fetch is allowed to probe the network again.
``force_offline`` pins the service to cached data (maintenance, demos).
"""

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Tracks whether network calls should be attempted."""

    def __init__(
        self,
        force_offline: bool = False,
        retry_after: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.force_offline = force_offline
        self.retry_after = retry_after
        self._clock = clock
        self._offline_since: float | None = None

    def is_online(self) -> bool:
        """Check if the runtime should attempt network calls."""
        if self.force_offline:
            return False
        if self._offline_since is None:
            return True
        # Let one call through to probe once the back-off elapsed
        return self._clock() - self._offline_since >= self.retry_after

    def mark_offline(self, reason: str = "") -> None:
        """Record a connection-level failure."""
        if self._offline_since is None:
            logger.warning(f"Network unreachable, switching to offline mode: {reason}")
        self._offline_since = self._clock()

    def mark_online(self) -> None:
        """Record a successful network round-trip."""
        if self._offline_since is not None:
            logger.info("Network reachable again, leaving offline mode")
        self._offline_since = None

    @property
    def status(self) -> str:
        if self.force_offline:
            return "forced_offline"
        return "online" if self._offline_since is None else "offline"
