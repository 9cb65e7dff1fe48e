"""Signal service: per-asset pipeline and periodic refresh loop.

Cycle flow:
1. Market snapshot (fetcher key ``coins``). On success the top rows become the
   last-known asset list; when no data is available at all, the last-known
   list is used instead.
2. One pipeline per tracked asset, run concurrently:
   price history -> indicators -> decision fusion -> signal store.
   A failing asset is logged and skipped; it never aborts the others.

The loop starts a new cycle every ``refresh_interval`` seconds as its own
task. Cycles may overlap; each signal write is an independent upsert, so the
last one to finish for an asset wins.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from app.services.market_data import MarketDataService
from app.storage.asset_store import AssetStore
from core.errors import DataUnavailable, SignalPipelineError
from core.indicators import IndicatorCalculator
from core.models import AssetSummary, Signal
from core.signal_generator import SignalGenerator

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """Summary of one refresh cycle."""

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    assets: int = 0
    generated: int = 0
    failed: int = 0
    degraded: int = 0
    used_last_known_assets: bool = False
    signals: list[Signal] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "assets": self.assets,
            "generated": self.generated,
            "failed": self.failed,
            "degraded": self.degraded,
            "used_last_known_assets": self.used_last_known_assets,
        }


class SignalService:
    """Runs the signal pipeline for the tracked assets."""

    def __init__(
        self,
        market_data: MarketDataService,
        generator: SignalGenerator,
        asset_store: AssetStore,
        indicator_calc: IndicatorCalculator | None = None,
        signal_asset_count: int = 5,
        refresh_interval: float = 5.0,
        visibility: Callable[[], bool] | None = None,
    ):
        self.market_data = market_data
        self.generator = generator
        self.asset_store = asset_store
        self.indicator_calc = indicator_calc or IndicatorCalculator()
        self.signal_asset_count = signal_asset_count
        self.refresh_interval = refresh_interval
        self._visibility = visibility

        self._paused = False
        self._loop_task: asyncio.Task | None = None
        self._cycles: set[asyncio.Task] = set()
        self.last_report: CycleReport | None = None
        self.cycle_count = 0

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def load_assets(self) -> tuple[list[AssetSummary], bool, bool]:
        """
        Get the asset list for this cycle.

        Returns:
            Tuple of (assets, degraded, last_known). Degraded is True when the
            listing came from cache or from the last-known list; last_known is
            True only for the latter.

        Raises:
            DataUnavailable: No listing and no last-known list
        """
        try:
            assets, result = await self.market_data.get_market_snapshot()
        except DataUnavailable as e:
            fallback = self.asset_store.assets
            if not fallback:
                raise
            logger.warning(
                f"Market listing unavailable ({e.message}), "
                f"using {len(fallback)} last-known assets"
            )
            return fallback, True, True

        await self.asset_store.save(assets)
        return assets, result.degraded, False

    async def generate_for(
        self,
        asset: AssetSummary,
        snapshot_degraded: bool = False,
    ) -> Signal | None:
        """
        Run the pipeline for one asset.

        Args:
            asset: Asset to evaluate
            snapshot_degraded: Whether the asset's current price came from cache

        Returns:
            The stored Signal, or None if the asset had no usable data
        """
        try:
            series, result = await self.market_data.get_price_history(asset.id)
            indicators = self.indicator_calc.calculate(series.prices)
            return await self.generator.decide(
                asset,
                indicators,
                degraded=snapshot_degraded or result.degraded,
            )
        except SignalPipelineError as e:
            logger.warning(f"Signal failed for {asset.id}: {e.message}")
            return None

    async def refresh_once(self) -> CycleReport:
        """
        Run one full cycle.

        Returns:
            CycleReport for the cycle
        """
        report = CycleReport()

        try:
            assets, degraded, last_known = await self.load_assets()
        except DataUnavailable as e:
            logger.warning(f"Load failed: {e.message}")
            report.failed = 1
            self._finish(report)
            return report

        report.used_last_known_assets = last_known
        targets = assets[: self.signal_asset_count]
        report.assets = len(targets)

        results = await asyncio.gather(
            *(self.generate_for(asset, degraded) for asset in targets),
            return_exceptions=True,
        )

        for asset, outcome in zip(targets, results):
            if isinstance(outcome, Signal):
                report.generated += 1
                report.signals.append(outcome)
                if outcome.degraded:
                    report.degraded += 1
            elif isinstance(outcome, BaseException):
                report.failed += 1
                logger.error(f"Unexpected pipeline error for {asset.id}: {outcome!r}")
            else:
                report.failed += 1

        self._finish(report)
        return report

    def _finish(self, report: CycleReport) -> None:
        self.last_report = report
        self.cycle_count += 1
        logger.debug(
            f"Cycle {self.cycle_count}: {report.generated}/{report.assets} signals, "
            f"{report.failed} failed, {report.degraded} degraded"
        )

    # =========================================================================
    # Refresh loop
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def in_flight(self) -> int:
        """Number of cycles currently running."""
        return len(self._cycles)

    def pause(self) -> None:
        """Skip scheduled cycles until resumed."""
        self._paused = True
        logger.info("Refresh loop paused")

    def resume(self) -> None:
        self._paused = False
        logger.info("Refresh loop resumed")

    def _should_run(self) -> bool:
        if self._paused:
            return False
        if self._visibility is not None and not self._visibility():
            return False
        return True

    def trigger(self) -> asyncio.Task:
        """Start a cycle now without waiting for it."""
        task = asyncio.create_task(self._safe_cycle())
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)
        return task

    async def _safe_cycle(self) -> None:
        try:
            await self.refresh_once()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Refresh cycle error: {e}", exc_info=True)

    async def run(self) -> None:
        """Start a cycle every ``refresh_interval`` seconds until cancelled."""
        while True:
            if self._should_run():
                self.trigger()
            await asyncio.sleep(self.refresh_interval)

    def start(self) -> None:
        """Start the refresh loop in the background."""
        if self.is_running:
            return
        self._loop_task = asyncio.create_task(self.run())
        logger.info(f"Refresh loop started (every {self.refresh_interval}s)")

    async def stop(self) -> None:
        """Stop the loop and cancel in-flight cycles."""
        tasks = list(self._cycles)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
            self._loop_task = None

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        await self.generator.drain_alerts()
        logger.info("Refresh loop stopped")
