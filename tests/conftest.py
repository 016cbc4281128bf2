from datetime import datetime, timedelta, timezone
from typing import Any, List

import pytest

from ratekeeper.core.config import Settings
from ratekeeper.models.rates import RateSnapshot
from ratekeeper.services.http_client import HttpResponse

T0 = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeFetcher:
    """Stands in for get_json: replays queued responses / exceptions in order."""

    def __init__(self, *outcomes: Any):
        self.outcomes: List[Any] = list(outcomes)
        self.calls: List[dict] = []

    def queue(self, *outcomes: Any) -> None:
        self.outcomes.extend(outcomes)

    async def __call__(self, url, *, params=None, timeout=5.0) -> HttpResponse:
        self.calls.append({"url": url, "params": dict(params or {}), "timeout": timeout})
        if not self.outcomes:
            raise AssertionError("unexpected provider call")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def navasan_ok(usd=600000, eur=650000, usdt=610000) -> HttpResponse:
    return HttpResponse(
        status_code=200,
        body={
            "usd": {"value": str(usd), "change": 0},
            "eur": {"value": str(eur), "change": 0},
            "usdt": {"price": usdt},
        },
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def settings() -> Settings:
    s = Settings(_env_file=None, navasan_api_key="test-key")
    s.init_post_load()
    return s


@pytest.fixture
def snapshot() -> RateSnapshot:
    return RateSnapshot(
        usd_to_base=600, eur_to_base=550, usdt_to_base=600, observed_at=T0
    )
