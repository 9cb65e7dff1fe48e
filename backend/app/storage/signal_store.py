"""Signal store: latest signal per asset.

The store exclusively owns the asset_id -> Signal mapping. Writes are
synchronous upserts (no suspension point), so concurrent per-asset pipelines
can never interleave inside a write; the last completed write for an asset
wins. No history is kept.

Update listeners (WebSocket broadcast) are scheduled fire-and-forget.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from core.models import Signal

logger = logging.getLogger(__name__)

# Type alias for update listeners
SignalListener = Callable[[Signal], Awaitable[None]]


class SignalStore:
    """In-memory map from asset identifier to latest signal."""

    def __init__(self):
        self._signals: dict[str, Signal] = {}
        self._listeners: list[SignalListener] = []
        self._pending: set[asyncio.Task] = set()

    def upsert(self, signal: Signal) -> None:
        """Store a signal, unconditionally replacing any previous one for the asset."""
        self._signals[signal.asset_id] = signal
        self._notify(signal)

    def get(self, asset_id: str) -> Signal | None:
        """Get the latest signal for an asset."""
        return self._signals.get(asset_id)

    def all(self) -> list[Signal]:
        """Get all signals, most recent first."""
        return sorted(
            self._signals.values(),
            key=lambda s: s.generated_at,
            reverse=True,
        )

    def snapshot(self) -> dict[str, Signal]:
        """Get a shallow copy of the mapping."""
        return dict(self._signals)

    def __contains__(self, asset_id: str) -> bool:
        return asset_id in self._signals

    def __len__(self) -> int:
        return len(self._signals)

    # =========================================================================
    # Listeners
    # =========================================================================

    def on_update(self, listener: SignalListener) -> None:
        """Register a listener for signal updates.

        Note: Duplicate listeners are ignored.
        """
        if listener not in self._listeners:
            self._listeners.append(listener)

    def off_update(self, listener: SignalListener) -> None:
        """Unregister a listener."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, signal: Signal) -> None:
        if not self._listeners:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Called outside an event loop (CLI, sync tests): nobody to notify
            return

        for listener in self._listeners:
            task = loop.create_task(listener(signal))
            self._pending.add(task)
            task.add_done_callback(self._listener_done)

    def _listener_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Signal listener error: {exc}")
