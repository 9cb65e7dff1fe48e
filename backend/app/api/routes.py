"""REST API routes.

Services are created in the application lifespan and attached to
``app.state``; routes only read from them.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from app.services import MarketContext
from core.models import AssetSummary, Signal

logger = logging.getLogger(__name__)

router = APIRouter()


# Response models
class SignalResponse(BaseModel):
    """Signal response model."""

    asset_id: str
    symbol: str
    decision: str
    confidence: int
    entry_price: float
    stop_loss: float
    take_profit: float
    explanation: str
    source: str
    degraded: bool
    generated_at: datetime

    @classmethod
    def from_signal(cls, signal: Signal) -> "SignalResponse":
        return cls(
            asset_id=signal.asset_id,
            symbol=signal.symbol,
            decision=signal.decision.value,
            confidence=signal.confidence,
            entry_price=signal.entry_price,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
            explanation=signal.explanation,
            source=signal.source.value,
            degraded=signal.degraded,
            generated_at=signal.generated_at,
        )


class SystemStatus(BaseModel):
    """System status response."""

    status: str
    version: str
    connectivity: str
    refresh_running: bool
    refresh_paused: bool
    cycles_in_flight: int
    cycle_count: int
    last_cycle: Optional[dict] = None
    signals: int
    cached_keys: int
    fetcher: dict
    persistence: dict


class RefreshResponse(BaseModel):
    """Refresh control response."""

    success: bool
    message: str


@router.get("/status", response_model=SystemStatus)
async def get_status(request: Request):
    """Get system status, including degraded-mode counters."""
    state = request.app.state
    service = state.signal_service
    fetcher = state.fetcher
    report = service.last_report

    return SystemStatus(
        status="degraded" if fetcher.stats.last_degraded else "running",
        version="0.1.0",
        connectivity=fetcher.connectivity.status,
        refresh_running=service.is_running,
        refresh_paused=service.is_paused,
        cycles_in_flight=service.in_flight,
        cycle_count=service.cycle_count,
        last_cycle=report.as_dict() if report else None,
        signals=len(state.signal_store),
        cached_keys=len(fetcher.cache),
        fetcher=fetcher.stats.as_dict(),
        persistence=await state.persistence.get_info(),
    )


@router.get("/signals", response_model=list[SignalResponse])
async def get_signals(
    request: Request,
    decision: Optional[str] = Query(None, description="Filter by decision (Buy, Sell, Hold)"),
    min_confidence: int = Query(0, ge=0, le=100, description="Minimum confidence"),
):
    """Get the latest signal for every tracked asset."""
    signals = request.app.state.signal_store.all()

    if decision:
        signals = [s for s in signals if s.decision.value.lower() == decision.lower()]
    signals = [s for s in signals if s.confidence >= min_confidence]

    return [SignalResponse.from_signal(s) for s in signals]


@router.get("/signals/{asset_id}", response_model=SignalResponse)
async def get_signal(request: Request, asset_id: str):
    """Get the latest signal for one asset."""
    signal = request.app.state.signal_store.get(asset_id)

    if signal is None:
        raise HTTPException(status_code=404, detail="Signal not found")

    return SignalResponse.from_signal(signal)


@router.post("/signals/{asset_id}", response_model=SignalResponse)
async def generate_signal(request: Request, asset_id: str):
    """Generate a signal for one listed asset now."""
    state = request.app.state
    asset = state.asset_store.find(asset_id)

    if asset is None:
        raise HTTPException(status_code=404, detail="Asset not found")

    signal = await state.signal_service.generate_for(asset)
    if signal is None:
        raise HTTPException(status_code=503, detail="No data for asset")

    return SignalResponse.from_signal(signal)


@router.get("/assets", response_model=list[AssetSummary])

async def get_assets(request: Request):
    """Get the last-known asset list."""
    return request.app.state.asset_store.assets


@router.get("/context", response_model=MarketContext)
async def get_context(request: Request):
    """Get fear & greed reading, hot news and gas price."""
    return await request.app.state.context_service.get_context()


@router.post("/refresh", response_model=RefreshResponse)
async def trigger_refresh(request: Request):
    """Start a refresh cycle now."""
    request.app.state.signal_service.trigger()
    return RefreshResponse(success=True, message="Refresh cycle started")


@router.post("/refresh/pause", response_model=RefreshResponse)
async def pause_refresh(request: Request):
    """Pause scheduled refresh cycles."""
    request.app.state.signal_service.pause()
    return RefreshResponse(success=True, message="Refresh loop paused")


@router.post("/refresh/resume", response_model=RefreshResponse)
async def resume_refresh(request: Request):
    """Resume scheduled refresh cycles."""
    request.app.state.signal_service.resume()
    return RefreshResponse(success=True, message="Refresh loop resumed")
