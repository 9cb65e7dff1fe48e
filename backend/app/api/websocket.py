"""WebSocket endpoint for real-time updates.

The connection manager is the presentation side of the pipeline: it follows
signal store updates, acts as the alert sink for high-confidence signals and
relays non-fatal notices (e.g., advisory rate limiting).
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import orjson
from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from core.models import Signal

logger = logging.getLogger(__name__)


def _orjson_dumps(obj: Any) -> str:
    """Serialize object to JSON string using orjson."""
    return orjson.dumps(obj, default=str).decode("utf-8")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WebSocketMessage(BaseModel):
    """WebSocket message format."""

    type: str  # "signal", "alert", "notice"
    data: dict[str, Any]
    timestamp: datetime

    def to_json(self) -> str:
        """Serialize to JSON string using orjson for performance."""
        return _orjson_dumps(self.model_dump(mode="json"))


class ConnectionManager:
    """Manage WebSocket connections and broadcasts."""

    def __init__(self):
        self._connections: list[WebSocket] = []
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self._connections.append(websocket)
        logger.info(f"WebSocket connected. Total connections: {len(self._connections)}")

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a disconnected WebSocket."""
        async with self._lock:
            if websocket in self._connections:
                self._connections.remove(websocket)
        logger.info(f"WebSocket disconnected. Total connections: {len(self._connections)}")

    async def broadcast(self, message: WebSocketMessage) -> None:
        """Broadcast message to all connected clients."""
        if not self._connections:
            return

        message_text = message.to_json()
        disconnected = []

        async with self._lock:
            for websocket in self._connections:
                try:
                    await websocket.send_text(message_text)
                except Exception as e:
                    logger.warning(f"Failed to send message: {e}")
                    disconnected.append(websocket)

            # Remove disconnected websockets
            for ws in disconnected:
                self._connections.remove(ws)

    async def send_signal(self, signal: Signal) -> None:
        """Broadcast a signal update (signal store listener)."""
        message = WebSocketMessage(
            type="signal",
            data=signal.model_dump(mode="json"),
            timestamp=_now(),
        )
        await self.broadcast(message)

    async def send_alert(self, signal: Signal) -> None:
        """Broadcast a high-confidence alert (alert sink)."""
        logger.info(
            f"ALERT {signal.asset_id}: {signal.decision.value} "
            f"conf={signal.confidence} entry={signal.entry_price}"
        )
        message = WebSocketMessage(
            type="alert",
            data={
                "asset_id": signal.asset_id,
                "symbol": signal.symbol,
                "decision": signal.decision.value,
                "confidence": signal.confidence,
                "entry_price": signal.entry_price,
            },
            timestamp=_now(),
        )
        await self.broadcast(message)

    def send_notice(self, text: str) -> None:
        """Broadcast a non-fatal notice without waiting for delivery."""
        if not self._connections:
            return
        message = WebSocketMessage(type="notice", data={"message": text}, timestamp=_now())
        task = asyncio.get_running_loop().create_task(self.broadcast(message))
        self._pending.add(task)
        task.add_done_callback(self._notice_done)

    def _notice_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Notice broadcast failed: {exc!r}")

    async def drain_notices(self) -> None:
        """Wait for notices still being broadcast."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    @property
    def connection_count(self) -> int:
        """Get number of active connections."""
        return len(self._connections)

    def has_viewers(self) -> bool:
        """Check if any client is watching (refresh loop visibility gate)."""
        return bool(self._connections)


# Global connection manager
manager = ConnectionManager()


async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time updates.

    Messages sent to clients:
    - signal: Signal stored for an asset
    - alert: High-confidence signal
    - notice: Non-fatal notice (e.g., advisory rate limited)

    Message format:
    {
        "type": "signal",
        "data": {...},
        "timestamp": "2024-01-01T00:00:00+00:00"
    }
    """
    await manager.connect(websocket)

    try:
        # Send current signals so a new client does not wait a full cycle
        store = getattr(websocket.app.state, "signal_store", None)
        await websocket.send_text(_orjson_dumps({
            "type": "connected",
            "data": {
                "message": "Connected to signal feed",
                "signals": [s.model_dump(mode="json") for s in store.all()] if store else [],
            },
            "timestamp": _now().isoformat(),
        }))

        # Keep connection alive and handle incoming messages
        while True:
            try:
                data = await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=60.0,
                )

                try:
                    message = orjson.loads(data)
                    await handle_client_message(websocket, message)
                except orjson.JSONDecodeError:
                    await websocket.send_text(_orjson_dumps({
                        "type": "error",
                        "data": {"message": "Invalid JSON"},
                        "timestamp": _now().isoformat(),
                    }))

            except asyncio.TimeoutError:
                # Send ping to keep connection alive
                await websocket.send_text(_orjson_dumps({
                    "type": "ping",
                    "data": {},
                    "timestamp": _now().isoformat(),
                }))

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        await manager.disconnect(websocket)


async def handle_client_message(websocket: WebSocket, message: dict) -> None:
    """Handle incoming message from client."""
    msg_type = message.get("type", "")

    if msg_type == "ping":
        await websocket.send_text(_orjson_dumps({
            "type": "pong",
            "data": {},
            "timestamp": _now().isoformat(),
        }))
    else:
        await websocket.send_text(_orjson_dumps({
            "type": "error",
            "data": {"message": f"Unknown message type: {msg_type}"},
            "timestamp": _now().isoformat(),
        }))
