from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from .core.config import get_settings, Settings
from .core.logging import init_logging, request_context_middleware
from .core import errors
from .routers import rates
from .services.http_client import HttpFetcher, get_json
from .services.rates.orchestrator import (
    Clock,
    build_rate_cache,
    build_rate_orchestrator,
    utc_now,
)


def create_app(
    settings_override: Settings | None = None,
    fetcher: HttpFetcher = get_json,
    clock: Clock = utc_now,
) -> FastAPI:
    """Application factory.

    settings_override: pass an already constructed Settings instance for tests
    to isolate environment (e.g., no API key). Falls back to cached get_settings().
    fetcher / clock: provider transport and time source, swapped in tests.

    The rate cache is built here, once per process, and shared through app.state.
    """
    settings = settings_override or get_settings()
    # Initialize logging early
    init_logging(debug=settings.debug)

    app = FastAPI(
        title=settings.app_name, debug=settings.debug, version=settings.version
    )

    cache = build_rate_cache(settings)
    app.state.settings = settings
    app.state.rate_cache = cache
    app.state.rate_orchestrator = build_rate_orchestrator(
        settings, cache, fetcher=fetcher, clock=clock
    )

    # Middleware (request id / structured logging)
    app.middleware("http")(request_context_middleware)

    # Error handlers
    app.add_exception_handler(StarletteHTTPException, errors.http_exception_handler)
    app.add_exception_handler(RequestValidationError, errors.validation_error_handler)
    app.add_exception_handler(
        errors.RatesConfigurationError, errors.rates_configuration_handler
    )
    app.add_exception_handler(Exception, errors.server_error_handler)

    # Routers
    app.include_router(rates.router)

    @app.get("/")
    async def root():
        return {"message": settings.app_name, "version": settings.version}

    return app


app = create_app()
