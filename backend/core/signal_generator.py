"""Signal generator fusing a remote advisory with local RSI rules.

This module is pure business logic with no I/O dependencies.
The advisory call, signal persistence, alerting and user notices are injected
via callbacks, so tests and the one-shot CLI can run it without a network.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from core.models import (
    AdvisoryRequest,
    AdvisoryResponse,
    AdvisoryResult,
    AdvisoryStatus,
    AssetSummary,
    Decision,
    FusionConfig,
    Indicators,
    Signal,
    SignalSource,
)

logger = logging.getLogger(__name__)

# Type aliases for callbacks
AdvisoryPort = Callable[[AdvisoryRequest], Awaitable[AdvisoryResult]]
SaveSignalCallback = Callable[[Signal], None]
AlertCallback = Callable[[Signal], Awaitable[None]]
NoticeCallback = Callable[[str], None]


class SignalGenerator:
    """
    Turn an indicator snapshot into a Buy/Sell/Hold signal.

    Decision order:
    1. Ask the advisory source once. A structurally valid reply is adopted
       as-is. Rate limiting, errors and unparseable replies all mean
       "no advisory" for this cycle; there is no retry.
    2. Otherwise apply local rules: RSI < 30 -> Buy, RSI > 70 -> Sell,
       else Hold.

    The result is always written to the signal store (last write wins), and
    an alert is raised when confidence exceeds the alert threshold.

    All I/O operations are injected via callbacks:
    - request_advisory: Remote advisory port (None = local rules only)
    - save_signal: Synchronous upsert into the signal store
    - on_alert: Async alert sink, scheduled fire-and-forget
    - on_notice: Non-fatal user notice (e.g., "advisory rate limited")
    """

    def __init__(
        self,
        config: FusionConfig | None = None,
        request_advisory: AdvisoryPort | None = None,
        save_signal: SaveSignalCallback | None = None,
        on_alert: AlertCallback | None = None,
        on_notice: NoticeCallback | None = None,
    ):
        self.config = config or FusionConfig()

        # Injected callbacks (None = no-op)
        self._request_advisory = request_advisory
        self._save_signal = save_signal
        self._on_alert = on_alert
        self._on_notice = on_notice

        # Strong references so scheduled alerts are not garbage collected
        self._pending_alerts: set[asyncio.Task] = set()

    def calculate_targets(self, decision: Decision, price: float) -> tuple[float, float]:
        """
        Calculate stop loss and take profit prices.

        The stop loss ratio is applied below the price for every decision,
        including Sell.

        Returns:
            Tuple of (stop_loss, take_profit)
        """
        cfg = self.config
        stop_loss = price * cfg.stop_loss_ratio
        if decision == Decision.BUY:
            take_profit = price * cfg.take_profit_buy_ratio
        else:
            take_profit = price * cfg.take_profit_sell_ratio
        return stop_loss, take_profit

    def local_signal(
        self,
        asset: AssetSummary,
        indicators: Indicators,
        degraded: bool = False,
    ) -> Signal:
        """
        Build a signal from the deterministic RSI rules.

        Args:
            asset: Asset being evaluated (provides the current price)
            indicators: Indicator snapshot for the asset
            degraded: Whether the price series came from cache

        Returns:
            Signal with source LOCAL
        """
        cfg = self.config
        rsi_value = indicators.rsi
        price = asset.current_price

        if rsi_value < cfg.rsi_oversold:
            decision, confidence = Decision.BUY, cfg.triggered_confidence
        elif rsi_value > cfg.rsi_overbought:
            decision, confidence = Decision.SELL, cfg.triggered_confidence
        else:
            decision, confidence = Decision.HOLD, cfg.neutral_confidence

        stop_loss, take_profit = self.calculate_targets(decision, price)

        return Signal(
            asset_id=asset.id,
            symbol=asset.symbol,
            decision=decision,
            confidence=confidence,
            entry_price=price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            explanation=f"RSI: {rsi_value:.1f}",
            source=SignalSource.LOCAL,
            degraded=degraded,
        )

    def advisory_signal(
        self,
        asset: AssetSummary,
        advisory: AdvisoryResponse,
        indicators: Indicators,
        degraded: bool = False,
    ) -> Signal:
        """
        Adopt a parsed advisory as the signal.

        Decision, confidence, entry and stop loss are trusted verbatim. When
        the advisory omits a take profit, the local ratio is applied to its
        entry price.
        """
        take_profit = advisory.take_profit
        if take_profit is None:
            _, take_profit = self.calculate_targets(advisory.decision, advisory.entry)

        explanation = advisory.explanation or (
            f"Advisory {advisory.decision.value} ({advisory.confidence}%), "
            f"RSI: {indicators.rsi:.1f}"
        )

        return Signal(
            asset_id=asset.id,
            symbol=asset.symbol,
            decision=advisory.decision,
            confidence=advisory.confidence,
            entry_price=advisory.entry,
            stop_loss=advisory.stoploss,
            take_profit=take_profit,
            explanation=explanation,
            source=SignalSource.ADVISORY,
            degraded=degraded,
        )

    async def _fetch_advisory(
        self,
        asset: AssetSummary,
        indicators: Indicators,
    ) -> AdvisoryResult:
        """Run the advisory port once, mapping every failure to NOT_AVAILABLE."""
        if self._request_advisory is None:
            return AdvisoryResult.not_available("advisory disabled")

        request = AdvisoryRequest(
            asset_name=asset.display_name,
            current_price=asset.current_price,
            rsi=indicators.rsi,
            macd_histogram=indicators.macd_histogram,
        )

        try:
            return await self._request_advisory(request)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Advisory port error for {asset.id}: {e}")
            return AdvisoryResult.not_available(str(e))

    async def decide(
        self,
        asset: AssetSummary,
        indicators: Indicators,
        degraded: bool = False,
    ) -> Signal:
        """
        Produce, store and (if confident) alert the signal for one asset.

        Args:
            asset: Asset being evaluated
            indicators: Indicator snapshot computed from its price series
            degraded: Whether the series behind the indicators came from cache

        Returns:
            The stored Signal
        """
        result = await self._fetch_advisory(asset, indicators)

        if result.status == AdvisoryStatus.RATE_LIMITED:
            logger.warning(f"Advisory rate limited for {asset.id}, using local rules")
            if self._on_notice:
                self._on_notice("AI rate limited")

        if result.is_parsed:
            signal = self.advisory_signal(asset, result.response, indicators, degraded)
        else:
            if result.status == AdvisoryStatus.NOT_AVAILABLE and result.reason:
                logger.debug(f"No advisory for {asset.id}: {result.reason}")
            signal = self.local_signal(asset, indicators, degraded)

        # Upsert without suspending between decision and write
        if self._save_signal:
            self._save_signal(signal)

        logger.info(
            f"{signal.decision.value} signal: {asset.id} @ {signal.entry_price} "
            f"conf={signal.confidence} SL={signal.stop_loss:.6g} TP={signal.take_profit:.6g} "
            f"source={signal.source.value}{' (degraded)' if degraded else ''}"
        )

        if signal.confidence > self.config.alert_confidence_threshold:
            self._raise_alert(signal)

        return signal

    def _raise_alert(self, signal: Signal) -> None:
        """Schedule the alert sink without awaiting it."""
        if self._on_alert is None:
            return

        task = asyncio.create_task(self._on_alert(signal))
        self._pending_alerts.add(task)
        task.add_done_callback(self._alert_done)

    def _alert_done(self, task: asyncio.Task) -> None:
        self._pending_alerts.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Alert sink error: {exc}")

    async def drain_alerts(self) -> None:
        """Wait for scheduled alerts to finish (used on shutdown and in tests)."""
        if self._pending_alerts:
            await asyncio.gather(*self._pending_alerts, return_exceptions=True)
