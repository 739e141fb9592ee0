from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


FIRE_DATA_ERROR = "Unable to fetch fire data"
INTERNAL_ERROR = "Internal server error"
METHOD_NOT_ALLOWED = "Method not allowed"

# Public strings for framework-raised HTTP errors. Anything else collapses to
# a generic message so no detail text ever reaches the client.
_HTTP_ERROR_MESSAGES = {
    404: "Not found",
    405: METHOD_NOT_ALLOWED,
    503: "Service unavailable",
}

# Sent on every response. The catch-all handler below runs outside the http
# middleware stack, so it applies them itself.
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class FireFeedError(Exception):
    """Base exception with HTTP status code and a client-safe message."""

    public_message = INTERNAL_ERROR

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class DataSourceError(FireFeedError):
    """Fire data source unreachable, misconfigured, timed out, or the query failed."""

    public_message = FIRE_DATA_ERROR

    def __init__(self, message: str = "fire data source failure"):
        super().__init__(message, status_code=500)


class CacheUnavailable(FireFeedError):
    """Cache backend failure. The feed service treats it as a miss; never reaches clients."""

    def __init__(self, message: str = "cache backend unavailable"):
        super().__init__(message, status_code=500)


def service_unavailable(message: str):
    raise HTTPException(status_code=503, detail=message)


def method_not_allowed() -> JSONResponse:
    return JSONResponse({"error": METHOD_NOT_ALLOWED}, status_code=405, headers={"Allow": "GET"})


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(FireFeedError)
    async def handle_firefeed_error(request: Request, exc: FireFeedError):
        logger.error("[app] %s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse({"error": exc.public_message}, status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(_request: Request, exc: StarletteHTTPException):
        message = _HTTP_ERROR_MESSAGES.get(exc.status_code)
        if message is None:
            message = INTERNAL_ERROR if exc.status_code >= 500 else "Bad request"
        return JSONResponse(
            {"error": message},
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception("[app] Unhandled error: %s", exc)
        return JSONResponse({"error": INTERNAL_ERROR}, status_code=500, headers=SECURITY_HEADERS)
