"""Smoke script for the rate cache backoff.

Demonstrates, against an in-process app with a scripted provider:
 1. First poll fetches and serves fresh rates.
 2. After the TTL a provider outage serves the same values flagged stale.
 3. Repeated outages push the next attempt further out (5s, 10s, 20s ...).
 4. Provider recovery clears the stale flag and the failure counter.

NOTE: This is a lightweight diagnostic and not a formal test.
"""

from datetime import datetime, timedelta, timezone
from pprint import pprint

from fastapi.testclient import TestClient

from ratekeeper.core.config import Settings
from ratekeeper.main import create_app
from ratekeeper.services.http_client import HttpResponse


class _Clock:
    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self):
        return self.now


def run():
    clock = _Clock()
    script = [
        HttpResponse(200, {"usd": {"value": "585000"}, "eur": {"value": "640000"}, "usdt": {"price": "590000"}}),
        HttpResponse(503),
        HttpResponse(429),
        HttpResponse(429),
        HttpResponse(200, {"usd": {"value": "590000"}, "eur": {"value": "645000"}, "usdt": {"price": "595000"}}),
    ]

    async def fetcher(url, *, params=None, timeout=5.0):
        return script.pop(0)

    settings = Settings(navasan_api_key="smoke", enable_rate_diagnostics=True)
    client = TestClient(create_app(settings_override=settings, fetcher=fetcher, clock=clock))
    out = {}

    out["initial"] = client.get("/rates").json()

    clock.now += timedelta(hours=24)
    for i in range(3):
        out[f"outage_{i + 1}"] = client.get("/rates").json()
        latest = client.get("/rates/diagnostics").json()["latest"]
        out[f"outage_{i + 1}_next_eligible_at"] = latest["next_eligible_at"]
        clock.now = datetime.fromisoformat(latest["next_eligible_at"])

    out["recovered"] = client.get("/rates").json()
    pprint(out)


if __name__ == "__main__":
    run()
