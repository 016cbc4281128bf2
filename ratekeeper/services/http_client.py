from __future__ import annotations

"""Lightweight async HTTP GET helper for the rate provider.

One call is one network attempt: no retries and no response caching here.
Retrying is spread across later polls by the rate cache's backoff schedule.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx


class HttpError(Exception):
    """No usable response: connection failure, timeout or undecodable body."""


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


# Injected into the orchestrator so tests can swap the transport.
HttpFetcher = Callable[..., Awaitable[HttpResponse]]


async def get_json(
    url: str,
    *,
    params: Optional[Mapping[str, str]] = None,
    timeout: float = 5.0,
    client: Optional[httpx.AsyncClient] = None,
) -> HttpResponse:
    """GET ``url`` and decode a JSON body for 2xx responses.

    Non-2xx responses are returned as-is (body not decoded); transport errors
    and invalid JSON on a 2xx response raise HttpError.
    """
    owns_client = client is None
    http = client or httpx.AsyncClient()
    try:
        resp = await http.get(
            url,
            params=params,
            timeout=timeout,
            headers={"accept": "application/json", "cache-control": "no-store"},
        )
        if not resp.is_success:
            return HttpResponse(status_code=resp.status_code)
        try:
            return HttpResponse(status_code=resp.status_code, body=resp.json())
        except ValueError as e:  # JSON decode
            raise HttpError(f"Invalid JSON from {url}: {e}") from e
    except httpx.HTTPError as e:
        raise HttpError(f"Failed to fetch JSON from {url}: {e}") from e
    finally:
        if owns_client:
            await http.aclose()
