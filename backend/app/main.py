"""Main application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)

# Reduce noise from third-party libraries (must be set before importing them)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from app.api import manager, router, websocket_endpoint
from app.bootstrap import Services, build_services, close_services, restore_state
from app.config import get_settings

logger = logging.getLogger(__name__)

services: Services | None = None
_persist_task: asyncio.Task | None = None


async def _periodic_persist(services: Services, interval: float):
    """Background task to periodically flush the cache to persistence."""
    while True:
        try:
            await asyncio.sleep(interval)
            await services.cache.flush(services.persistence)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.warning(f"Cache persist error: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global services, _persist_task

    settings = get_settings()
    logger.info("Starting signal service...")

    services = build_services(
        settings,
        on_alert=manager.send_alert,
        on_notice=manager.send_notice,
        visibility=manager.has_viewers if settings.refresh_requires_viewer else None,
    )
    services.signal_store.on_update(manager.send_signal)

    try:
        await asyncio.wait_for(restore_state(services), timeout=10)
    except asyncio.TimeoutError:
        logger.warning("Persistence restore timed out - starting with empty cache")

    # Expose services to API routes via app.state
    app.state.services = services
    app.state.signal_store = services.signal_store
    app.state.asset_store = services.asset_store
    app.state.signal_service = services.signal_service
    app.state.fetcher = services.fetcher
    app.state.context_service = services.context_service
    app.state.persistence = services.persistence

    services.signal_service.start()
    _persist_task = asyncio.create_task(
        _periodic_persist(services, settings.persist_interval)
    )
    logger.info("Refresh loop and persistence task started")

    yield

    # Shutdown
    logger.info("Shutting down...")

    if _persist_task:
        _persist_task.cancel()
        try:
            await _persist_task
        except asyncio.CancelledError:
            pass

    await manager.drain_notices()
    await close_services(services)
    logger.info("Shutdown complete")


# Create FastAPI app with orjson for faster JSON serialization
app = FastAPI(
    title="Market Signal Service",
    description="Resilient Buy/Sell/Hold signals from live market data",
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include REST routes
app.include_router(router, prefix="/api")

# WebSocket endpoint
app.websocket("/ws")(websocket_endpoint)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Market Signal Service",
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


def main():
    """Run the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
