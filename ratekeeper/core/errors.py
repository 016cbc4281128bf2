from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette import status
import logging

logger = logging.getLogger("ratekeeper.errors")

NO_STORE_HEADERS = {"cache-control": "no-store"}


class RatesConfigurationError(Exception):
    """Provider credential is missing and there is no snapshot to fall back on.

    This is a deployment problem, never retried.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "NAVASAN_API_KEY is not configured"):
        super().__init__(message)
        self.message = message


def http_exception_handler(request: Request, exc):  # type: ignore
    if getattr(exc, "status_code", 404) != status.HTTP_404_NOT_FOUND:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "http_error", "detail": exc.detail},
        )
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={
            "error": "not_found",
            "detail": f"No route for {request.method} {request.url.path}",
        },
    )


def validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "detail": exc.errors(),
        },
    )


def rates_configuration_handler(request: Request, exc: RatesConfigurationError):  # type: ignore
    logger.error("rates requested without provider credential: %s", exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message},
        headers=NO_STORE_HEADERS,
    )


def server_error_handler(request: Request, exc: Exception):  # type: ignore
    logger.exception("unhandled exception")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "detail": "An unexpected error occurred.",
        },
    )
