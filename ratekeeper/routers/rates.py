from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from ratekeeper.core.config import Settings
from ratekeeper.core.errors import NO_STORE_HEADERS
from ratekeeper.services.rates.cache import RateCache
from ratekeeper.services.rates.orchestrator import RateOrchestrator

"""Rates router.

Endpoints:
    - GET /rates              -> latest snapshot (fresh, stale, or an error body)
    - GET /rates/diagnostics  -> cache bookkeeping, guarded by
                                 settings.enable_rate_diagnostics

Freshness is decided server-side by the rate cache, so every response tells
intermediaries not to cache it.
"""

router = APIRouter(prefix="/rates", tags=["rates"])


def get_orchestrator(request: Request) -> RateOrchestrator:
    return request.app.state.rate_orchestrator


def get_rate_cache(request: Request) -> RateCache:
    return request.app.state.rate_cache


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_diagnostics_enabled(settings: Settings = Depends(get_app_settings)):
    if not settings.enable_rate_diagnostics:
        raise HTTPException(status_code=403, detail="rate diagnostics disabled")
    return True


@router.get("", summary="Latest exchange rates in toman")
async def get_rates(
    orchestrator: RateOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    result = await orchestrator.poll()
    return JSONResponse(
        status_code=result.status_code,
        content=result.body(),
        headers=NO_STORE_HEADERS,
    )


@router.get("/diagnostics", summary="Rate cache bookkeeping (latest entry + history)")
async def get_diagnostics(
    _: bool = Depends(require_diagnostics_enabled),
    cache: RateCache = Depends(get_rate_cache),
) -> JSONResponse:
    return JSONResponse(content=cache.get_diagnostics().as_dict(), headers=NO_STORE_HEADERS)
