import asyncio
from datetime import timedelta

import pytest

from ratekeeper.core.errors import RatesConfigurationError
from ratekeeper.core.config import Settings
from ratekeeper.services.http_client import HttpError, HttpResponse
from ratekeeper.services.rates.cache import RateCache
from ratekeeper.services.rates.orchestrator import build_rate_orchestrator
from ratekeeper.services.rates.providers import NavasanRateSource

from .conftest import T0, FakeFetcher, navasan_ok


def _orchestrator(settings, clock, fetcher, cache=None):
    cache = cache or RateCache()
    return build_rate_orchestrator(settings, cache, fetcher=fetcher, clock=clock), cache


def poll(orch):
    return asyncio.run(orch.poll())


def test_first_poll_fetches_and_caches(settings, clock, fetcher):
    fetcher.queue(navasan_ok(usd=600000))
    orch, cache = _orchestrator(settings, clock, fetcher)

    result = poll(orch)
    assert result.status_code == 200
    assert result.snapshot.usd_to_base == 60000
    assert result.snapshot.stale is False
    assert result.snapshot.observed_at == T0
    assert fetcher.calls[0]["params"] == {"item": "usd,eur,usdt", "api_key": "test-key"}
    assert fetcher.calls[0]["url"] == "https://api.navasan.tech/latest/"

    body = result.body()
    assert body["usdToBase"] == 60000
    assert body["stale"] is False
    assert "error" not in body


def test_polls_within_ttl_do_not_touch_network(settings, clock, fetcher):
    fetcher.queue(navasan_ok())
    orch, _ = _orchestrator(settings, clock, fetcher)
    poll(orch)

    for _ in range(5):
        clock.advance(minutes=45)
        assert poll(orch).status_code == 200
    assert len(fetcher.calls) == 1

    clock.advance(hours=21)
    fetcher.queue(navasan_ok(usd=610000))
    assert poll(orch).snapshot.usd_to_base == 61000
    assert len(fetcher.calls) == 2


@pytest.mark.parametrize("status", [401, 422, 429, 503])
def test_recoverable_status_serves_stale_snapshot(settings, clock, fetcher, status):
    fetcher.queue(navasan_ok(usd=600000), HttpResponse(status_code=status))
    orch, cache = _orchestrator(settings, clock, fetcher)
    poll(orch)

    clock.advance(hours=24)
    result = poll(orch)
    assert result.status_code == 200
    assert result.snapshot.stale is True
    assert result.snapshot.usd_to_base == 60000
    latest = cache.get_diagnostics().latest
    assert latest.last_status_code == status
    assert latest.next_eligible_at == clock.now + timedelta(seconds=5)

    # inside the backoff window: cached stale snapshot, no provider call
    clock.advance(seconds=2)
    again = poll(orch)
    assert again.snapshot.stale is True
    assert len(fetcher.calls) == 2


@pytest.mark.parametrize("status", [401, 429])
def test_recoverable_status_without_fallback_is_forwarded(settings, clock, fetcher, status):
    fetcher.queue(HttpResponse(status_code=status))
    orch, cache = _orchestrator(settings, clock, fetcher)

    result = poll(orch)
    assert result.status_code == status
    assert result.snapshot is None
    assert result.body() == {"error": "Failed to fetch rates", "stale": True}
    assert not cache.should_fetch(clock.now)


def test_unexpected_status_leaves_cache_untouched(settings, clock, fetcher):
    fetcher.queue(navasan_ok(), HttpResponse(status_code=404))
    orch, cache = _orchestrator(settings, clock, fetcher)
    poll(orch)
    before = cache.get_diagnostics()

    clock.advance(hours=25)
    result = poll(orch)
    assert result.status_code == 404
    assert result.body() == {"error": "Unexpected error from upstream"}
    assert cache.get_diagnostics() == before
    # still eligible: the next poll tries again
    assert cache.should_fetch(clock.now)


def test_network_failure_without_fallback_is_503(settings, clock, fetcher):
    fetcher.queue(HttpError("connection refused"))
    orch, cache = _orchestrator(settings, clock, fetcher)

    result = poll(orch)
    assert result.status_code == 503
    assert result.body() == {"error": "Unable to connect to rate provider", "stale": True}
    assert cache.get_diagnostics().latest.last_status_code is None

    # the zero placeholder is served until the 5s backoff passes
    clock.advance(seconds=1)
    placeholder = poll(orch)
    assert placeholder.status_code == 200
    assert placeholder.snapshot.stale is True
    assert placeholder.snapshot.usd_to_base == 0


def test_network_failures_back_off_then_recover(settings, clock, fetcher):
    fetcher.queue(navasan_ok(usd=600000))
    orch, cache = _orchestrator(settings, clock, fetcher)
    poll(orch)

    clock.advance(hours=24)
    fetcher.queue(HttpError("timeout"))
    assert poll(orch).snapshot.stale is True

    clock.advance(seconds=5)
    fetcher.queue(HttpError("timeout"))
    assert poll(orch).snapshot.stale is True
    assert cache.get_diagnostics().latest.next_eligible_at == clock.now + timedelta(seconds=10)

    clock.advance(seconds=9)
    assert poll(orch).snapshot.stale is True  # served from cache
    assert len(fetcher.calls) == 3

    clock.advance(seconds=1)
    fetcher.queue(navasan_ok(usd=620000))
    recovered = poll(orch)
    assert recovered.snapshot.stale is False
    assert recovered.snapshot.usd_to_base == 62000
    assert cache.get_diagnostics().latest.failed_attempts == 0


def test_missing_api_key_without_snapshot_raises(clock):
    settings_no_key = Settings(_env_file=None, navasan_api_key=None)
    fetcher = FakeFetcher()
    orch, _ = _orchestrator(settings_no_key, clock, fetcher)
    with pytest.raises(RatesConfigurationError):
        poll(orch)
    assert fetcher.calls == []


def test_missing_api_key_serves_cached_snapshot_as_stale(clock, snapshot):
    cache = RateCache()
    cache.record_success(snapshot, T0)
    fetcher = FakeFetcher()
    orch, _ = _orchestrator(Settings(_env_file=None, navasan_api_key=None), clock, fetcher, cache)

    result = poll(orch)
    assert result.status_code == 200
    assert result.snapshot.stale is True
    assert result.body()["error"] == "NAVASAN_API_KEY missing"
    assert fetcher.calls == []
    # no retry bookkeeping for a configuration problem
    assert cache.get_diagnostics().latest.failed_attempts == 0


def test_concurrent_polls_share_one_provider_call(settings, clock):
    class SlowFetcher(FakeFetcher):
        async def __call__(self, url, *, params=None, timeout=5.0):
            await asyncio.sleep(0.01)
            return await super().__call__(url, params=params, timeout=timeout)

    fetcher = SlowFetcher(navasan_ok(usd=600000))
    orch, _ = _orchestrator(settings, clock, fetcher)

    async def burst():
        return await asyncio.gather(*(orch.poll() for _ in range(5)))

    results = asyncio.run(burst())
    assert len(fetcher.calls) == 1
    assert all(r.status_code == 200 for r in results)
    assert {r.snapshot.usd_to_base for r in results} == {60000}


def test_huge_provider_value_is_cached_normally(settings, clock, fetcher):
    fetcher.queue(HttpResponse(status_code=200, body={"usd": {"value": 1e30}}))
    orch, cache = _orchestrator(settings, clock, fetcher)

    result = poll(orch)
    assert result.status_code == 200
    assert result.snapshot.usd_to_base == pytest.approx(1e29)
    assert cache.get_diagnostics().latest.next_eligible_at == T0 + timedelta(hours=24)


def test_unusable_payload_backs_off(settings, clock, fetcher, monkeypatch):
    def broken(self, data, observed_at):
        raise ValueError("bad payload")

    monkeypatch.setattr(NavasanRateSource, "build_snapshot", broken)
    fetcher.queue(HttpResponse(status_code=200, body={"usd": {"value": 1}}))
    orch, cache = _orchestrator(settings, clock, fetcher)

    result = poll(orch)
    assert result.status_code == 503
    assert result.body() == {"error": "Unable to connect to rate provider", "stale": True}
    assert not cache.should_fetch(clock.now)
    # backoff window: no second provider call
    clock.advance(seconds=1)
    poll(orch)
    assert len(fetcher.calls) == 1
