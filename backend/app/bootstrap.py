"""Service wiring shared by the API server and the CLI.

Every stateful component (cache, stores, fetcher) is created here and passed
down explicitly; nothing below this module reaches for a global instance.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from app.clients import AdvisoryClient, CoinGeckoClient, MarketContextClient
from app.config import Settings
from app.services import (
    ConnectivityMonitor,
    MarketContextService,
    MarketDataService,
    ResilientFetcher,
    SignalService,
)
from app.storage import AssetStore, PersistentStore, SignalStore, TTLCache
from core.indicators import IndicatorCalculator
from core.signal_generator import AlertCallback, NoticeCallback, SignalGenerator

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Container for the running pipeline."""

    settings: Settings
    persistence: PersistentStore
    cache: TTLCache
    connectivity: ConnectivityMonitor
    fetcher: ResilientFetcher
    signal_store: SignalStore
    asset_store: AssetStore
    price_client: CoinGeckoClient
    advisory_client: AdvisoryClient
    context_client: MarketContextClient
    market_data: MarketDataService
    context_service: MarketContextService
    generator: SignalGenerator
    signal_service: SignalService


def build_services(
    settings: Settings,
    on_alert: AlertCallback | None = None,
    on_notice: NoticeCallback | None = None,
    visibility: Callable[[], bool] | None = None,
) -> Services:
    """Create all pipeline components from settings (no I/O)."""
    persistence = PersistentStore(settings.redis_url, prefix=settings.redis_key_prefix)
    cache = TTLCache(ttl_ms=settings.cache_ttl_ms)
    connectivity = ConnectivityMonitor(
        force_offline=settings.offline_mode,
        retry_after=settings.connectivity_retry,
    )
    fetcher = ResilientFetcher(cache, connectivity, timeout=settings.request_timeout)

    signal_store = SignalStore()
    asset_store = AssetStore(persistence, max_size=settings.asset_list_size)

    price_client = CoinGeckoClient(
        base_url=settings.price_api_url,
        vs_currency=settings.vs_currency,
        timeout=settings.request_timeout,
    )
    advisory_client = AdvisoryClient(
        url=settings.advisory_url,
        token=settings.advisory_token,
        timeout=settings.request_timeout,
        max_new_tokens=settings.advisory_max_new_tokens,
    )
    context_client = MarketContextClient(
        fear_greed_url=settings.fear_greed_url,
        news_url=settings.news_url,
        gas_url=settings.gas_url,
        timeout=settings.request_timeout,
    )

    market_data = MarketDataService(
        fetcher,
        price_client,
        page_size=settings.market_page_size,
        history_days=settings.history_days,
        history_interval=settings.history_interval,
    )
    context_service = MarketContextService(fetcher, context_client)

    generator = SignalGenerator(
        config=settings.fusion_config(),
        request_advisory=advisory_client.request_advisory if settings.advisory_enabled else None,
        save_signal=signal_store.upsert,
        on_alert=on_alert,
        on_notice=on_notice,
    )
    signal_service = SignalService(
        market_data,
        generator,
        asset_store,
        indicator_calc=IndicatorCalculator(settings.indicator_config()),
        signal_asset_count=settings.signal_asset_count,
        refresh_interval=settings.refresh_interval,
        visibility=visibility,
    )

    return Services(
        settings=settings,
        persistence=persistence,
        cache=cache,
        connectivity=connectivity,
        fetcher=fetcher,
        signal_store=signal_store,
        asset_store=asset_store,
        price_client=price_client,
        advisory_client=advisory_client,
        context_client=context_client,
        market_data=market_data,
        context_service=context_service,
        generator=generator,
        signal_service=signal_service,
    )


async def restore_state(services: Services) -> None:
    """Connect persistence and load the cache and last-known asset list."""
    if not await services.persistence.connect():
        logger.warning("Persistence unavailable - cache and asset list will not survive restarts")
        return
    await services.cache.restore(services.persistence)
    await services.asset_store.load()


async def close_services(services: Services) -> None:
    """Stop the loop, flush state and close every client."""
    await services.signal_service.stop()
    await services.cache.flush(services.persistence)
    await services.price_client.close()
    await services.advisory_client.close()
    await services.context_client.close()
    await services.persistence.close()
