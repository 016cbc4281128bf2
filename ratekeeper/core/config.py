from functools import lru_cache
from typing import Optional

from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment with defaults.

    Environment variable mapping follows pydantic's rules (e.g., APP_NAME, DEBUG,
    NAVASAN_API_KEY, RATES_CACHE_TTL_SECONDS).
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Basic app metadata
    app_name: str = "Rate Keeper"
    debug: bool = False
    version: str = "0.1.0"

    # Upstream provider (Navasan). Missing key is a deployment error.
    navasan_api_key: Optional[str] = None
    navasan_base_url: AnyHttpUrl = "https://api.navasan.tech/latest/"
    navasan_items: str = "usd,eur,usdt"
    http_timeout_seconds: float = 5.0

    # Exchange rates / caching
    rates_cache_ttl_seconds: int = 24 * 60 * 60
    rates_backoff_base_seconds: float = 5.0
    rates_backoff_cap_seconds: float = 5 * 60.0
    rates_history_limit: int = 10
    # Provider quotes rial; snapshots hold toman
    rate_scale_factor: int = 10

    # Cache bookkeeping endpoint, off by default
    enable_rate_diagnostics: bool = False

    def init_post_load(self) -> None:
        """Validate derived constraints that field types can't express."""
        if self.navasan_api_key is not None and not self.navasan_api_key.strip():
            self.navasan_api_key = None
        if self.rates_cache_ttl_seconds <= 0:
            raise ValueError("rates_cache_ttl_seconds must be positive")
        if self.rates_backoff_base_seconds <= 0:
            raise ValueError("rates_backoff_base_seconds must be positive")
        if self.rates_backoff_cap_seconds < self.rates_backoff_base_seconds:
            raise ValueError(
                "rates_backoff_cap_seconds must not be lower than rates_backoff_base_seconds"
            )
        if self.rates_history_limit <= 0:
            raise ValueError("rates_history_limit must be positive")
        if self.rate_scale_factor <= 0:
            raise ValueError("rate_scale_factor must be positive")


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    settings.init_post_load()
    return settings
