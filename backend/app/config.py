"""Application configuration."""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.models import FusionConfig, IndicatorConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Redis (persistence boundary for cache entries and last-known assets)
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "signals:"

    # Price feed (CoinGecko-compatible)
    price_api_url: str = "https://api.coingecko.com/api/v3"
    vs_currency: str = "usd"

    # Advisory source (hosted text-generation inference)
    advisory_url: str = "https://api-inference.huggingface.co/models/google/gemma-2b"
    advisory_token: str = ""
    advisory_enabled: bool = True
    advisory_max_new_tokens: int = 100

    # Market context feeds
    fear_greed_url: str = "https://api.alternative.me/fng/?limit=1"
    news_url: str = "https://cryptopanic.com/api/free/v1/posts/?auth_token=demo&filter=hot"
    gas_url: str = "https://api.blocknative.com/gasprices/blockprices"

    # Network resilience
    request_timeout: float = 5.0  # Seconds, per network call
    cache_ttl_ms: int = 60_000
    offline_mode: bool = False  # Force offline (serve cache only)
    connectivity_retry: float = 30.0  # Seconds offline before probing again

    # Refresh loop
    refresh_interval: float = 5.0
    refresh_requires_viewer: bool = False  # Skip cycles with no WebSocket clients
    persist_interval: float = 2.0

    # Asset selection
    market_page_size: int = 50
    asset_list_size: int = 20  # Rows kept as the last-known asset list
    signal_asset_count: int = 5  # Top assets that get a signal each cycle
    history_days: int = 1
    history_interval: str = "5m"

    # Indicator / decision parameters
    rsi_period: int = 14
    bollinger_period: int = 20
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    alert_confidence_threshold: int = 80

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    def indicator_config(self) -> IndicatorConfig:
        """Build the indicator config from settings."""
        return IndicatorConfig(
            rsi_period=self.rsi_period,
            bollinger_period=self.bollinger_period,
        )

    def fusion_config(self) -> FusionConfig:
        """Build the decision fusion config from settings."""
        return FusionConfig(
            rsi_oversold=self.rsi_oversold,
            rsi_overbought=self.rsi_overbought,
            alert_confidence_threshold=self.alert_confidence_threshold,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
