from __future__ import annotations

"""Per-poll decision: serve from cache or call the provider.

Error classes handled here (the cache itself never classifies):
    - missing API key       -> configuration error, never retried
    - 401/422/429/503        -> recoverable, absorbed by backoff + stale serving
    - any other non-2xx      -> unexpected, status forwarded, cache untouched
    - no response at all     -> treated like a recoverable status
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, FrozenSet, Optional

from ratekeeper.core.errors import RatesConfigurationError
from ratekeeper.models.rates import RateSnapshot
from ratekeeper.services.http_client import HttpError, HttpFetcher, get_json
from .cache import RateCache
from .providers import NavasanRateSource

if TYPE_CHECKING:  # pragma: no cover
    from ratekeeper.core.config import Settings

logger = logging.getLogger("ratekeeper.rates")

RECOVERABLE_STATUSES: FrozenSet[int] = frozenset({401, 422, 429, 503})

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PollResult:
    status_code: int
    snapshot: Optional[RateSnapshot] = None
    error: Optional[str] = None
    # Hard failures only: data would have been stale had any existed
    stale: bool = False

    def body(self) -> dict:
        if self.snapshot is None:
            out: dict = {"error": self.error or "Unknown error"}
            if self.stale:
                out["stale"] = True
            return out
        out = self.snapshot.to_payload()
        if self.error:
            out["error"] = self.error
        return out


class RateOrchestrator:
    def __init__(
        self,
        cache: RateCache,
        source: Optional[NavasanRateSource],
        fetcher: HttpFetcher = get_json,
        clock: Clock = utc_now,
        timeout: float = 5.0,
    ):
        self._cache = cache
        self._source = source
        self._fetch = fetcher
        self._clock = clock
        self._timeout = timeout
        self._lock = asyncio.Lock()

    def _fallback(
        self, status_code: Optional[int], now: datetime, no_fallback: PollResult
    ) -> PollResult:
        snapshot = self._cache.record_failure(status_code, now)
        entry = self._cache.get_diagnostics().latest
        logger.warning(
            "rate fetch failed; serving %s",
            "stale snapshot" if snapshot else "error",
            extra={
                "rates": {
                    "status_code": status_code,
                    "failed_attempts": entry.failed_attempts if entry else None,
                    "next_eligible_at": entry.next_eligible_at if entry else None,
                }
            },
        )
        if snapshot is None:
            return no_fallback
        return PollResult(status_code=200, snapshot=snapshot)

    def _transport_failure(self, now: datetime) -> PollResult:
        return self._fallback(
            None,
            now,
            PollResult(
                status_code=503,
                error="Unable to connect to rate provider",
                stale=True,
            ),
        )

    async def poll(self) -> PollResult:
        if self._source is None:
            snapshot = self._cache.get_snapshot(force_stale=True)
            if snapshot is None:
                raise RatesConfigurationError()
            return PollResult(
                status_code=200, snapshot=snapshot, error="NAVASAN_API_KEY missing"
            )

        async with self._lock:
            now = self._clock()
            if not self._cache.should_fetch(now):
                snapshot = self._cache.get_snapshot()
                if snapshot is not None:
                    return PollResult(status_code=200, snapshot=snapshot)
            return await self._refresh(self._source, now)

    async def _refresh(self, source: NavasanRateSource, now: datetime) -> PollResult:
        logger.debug("requesting rates from provider (items=%s)", source.items)
        try:
            response = await self._fetch(
                source.base_url,
                params=source.request_params(),
                timeout=self._timeout,
            )
        except HttpError as e:
            logger.error("rate provider unreachable: %s", e)
            return self._transport_failure(now)

        if not response.ok:
            if response.status_code in RECOVERABLE_STATUSES:
                return self._fallback(
                    response.status_code,
                    now,
                    PollResult(
                        status_code=response.status_code,
                        error="Failed to fetch rates",
                        stale=True,
                    ),
                )
            logger.warning(
                "unexpected status %s from rate provider", response.status_code
            )
            return PollResult(
                status_code=response.status_code,
                error="Unexpected error from upstream",
            )

        try:
            snapshot = source.build_snapshot(response.body, observed_at=now)
        except (ValueError, ArithmeticError):
            logger.exception("rate provider payload could not be ingested")
            return self._transport_failure(now)
        self._cache.record_success(snapshot, now)
        logger.info(
            "rates refreshed",
            extra={
                "rates": {
                    "usd_to_base": snapshot.usd_to_base,
                    "eur_to_base": snapshot.eur_to_base,
                    "usdt_to_base": snapshot.usdt_to_base,
                }
            },
        )
        return PollResult(status_code=200, snapshot=snapshot)


def build_rate_cache(settings: "Settings") -> RateCache:
    return RateCache(
        ttl=timedelta(seconds=settings.rates_cache_ttl_seconds),
        backoff_base=timedelta(seconds=settings.rates_backoff_base_seconds),
        backoff_cap=timedelta(seconds=settings.rates_backoff_cap_seconds),
        history_limit=settings.rates_history_limit,
    )


def build_rate_orchestrator(
    settings: "Settings",
    cache: RateCache,
    fetcher: HttpFetcher = get_json,
    clock: Clock = utc_now,
) -> RateOrchestrator:
    """Wire the orchestrator from settings; no API key means no provider source."""
    source = None
    api_key = (settings.navasan_api_key or "").strip()
    if api_key:
        source = NavasanRateSource(
            base_url=str(settings.navasan_base_url),
            api_key=api_key,
            items=settings.navasan_items,
            scale_factor=settings.rate_scale_factor,
        )
    return RateOrchestrator(
        cache,
        source,
        fetcher=fetcher,
        clock=clock,
        timeout=settings.http_timeout_seconds,
    )
