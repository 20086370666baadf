"""
User Service Correlation ID Middleware

Tags every request with a correlation id so the log lines of one request,
including cache fallbacks and store errors, can be grouped. An incoming
id is reused when it looks valid, otherwise a UUID4 is generated. The id
is bound into structlog context variables and echoed on the response.
"""

import re
import uuid
from typing import Awaitable, Callable, Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response as StarletteResponse
from starlette.types import ASGIApp

logger = structlog.get_logger()

CORRELATION_HEADERS = (
    "x-correlation-id",
    "correlation-id",
    "x-request-id",
    "request-id",
)

_CORRELATION_ID_PATTERN = re.compile(r"^[a-zA-Z0-9\-_\.]{8,255}$")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware for managing correlation IDs in HTTP requests.

    Generates or extracts a correlation ID, binds it to the logging context
    for the duration of the request and echoes it in the response headers.
    """

    def __init__(self, app: ASGIApp, header_name: str = "x-correlation-id"):
        super().__init__(app)
        self.header_name = header_name.lower()

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[StarletteResponse]],
    ) -> StarletteResponse:
        correlation_id = get_request_correlation_id(request)
        if correlation_id is None or not is_valid_correlation_id(correlation_id):
            correlation_id = str(uuid.uuid4())

        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
        try:
            logger.debug(
                "Request started",
                method=request.method,
                path=request.url.path,
            )

            response = await call_next(request)
            response.headers[self.header_name] = correlation_id

            logger.debug("Request completed", status_code=response.status_code)
            return response
        finally:
            structlog.contextvars.unbind_contextvars("correlation_id")


def get_request_correlation_id(request: Request) -> Optional[str]:
    """
    Extract correlation ID from request headers.

    Args:
        request: HTTP request

    Returns:
        Correlation ID if present, None otherwise
    """
    for header_name in CORRELATION_HEADERS:
        if header_name in request.headers:
            correlation_id = request.headers[header_name].strip()
            if correlation_id:
                return correlation_id

    return None


def is_valid_correlation_id(correlation_id: str) -> bool:
    """Accept UUIDs and other alphanumeric ids of 8 to 255 characters."""
    return bool(_CORRELATION_ID_PATTERN.match(correlation_id))
