"""
Exception handlers.

Maps each StoryWonderError kind to one HTTP status. Internal kinds
(storage, configuration, anything unexpected) are reported as a generic 500
so connection strings and stack details never reach a client.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    RateLimitError,
    StoryWonderError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins.
STATUS_BY_KIND: list[tuple[type[StoryWonderError], int]] = [
    (ValidationError, 400),
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (RateLimitError, 429),
    (ExternalServiceError, 502),
]

INTERNAL_ERROR_BODY = {
    "error": "INTERNAL_ERROR",
    "message": "An internal error occurred",
    "details": {},
}


def status_for(exc: StoryWonderError) -> int:
    for kind, status_code in STATUS_BY_KIND:
        if isinstance(exc, kind):
            return status_code
    return 500


def register_exception_handlers(app: FastAPI) -> None:
    """Install the domain, request-validation and catch-all handlers."""

    @app.exception_handler(StoryWonderError)
    async def handle_domain_error(request: Request, exc: StoryWonderError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(
                "%s %s failed: %s (%s)",
                request.method,
                request.url.path,
                type(exc).__name__,
                exc.code,
            )
            return JSONResponse(status_code=500, content=INTERNAL_ERROR_BODY)

        headers = None
        if status_code == 401:
            headers = {"WWW-Authenticate": "Bearer"}
        elif isinstance(exc, RateLimitError):
            headers = {"Retry-After": str(exc.retry_after)}

        return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
        return JSONResponse(
            status_code=400,
            content={
                "error": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": {"fields": fields},
            },
        )

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=INTERNAL_ERROR_BODY)
