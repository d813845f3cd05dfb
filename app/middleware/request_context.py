"""
RequestContext Middleware - Adds request tracking to all requests.

Every request gets a request_id (reused from an incoming X-Request-ID header
when present). It is stored on request.state, bound into the structlog
context so every log line emitted while serving the request carries it, and
echoed back in the X-Request-ID response header.
"""

import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_REQUEST_ID_LENGTH = 128


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Adds request_id to request.state and to the structlog context."""

    async def dispatch(self, request: Request, call_next):
        request_id = self._incoming_request_id(request) or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=request.url.path,
        )

        logger.debug("Request started", method=request.method)

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers["X-Request-ID"] = request_id
        return response

    def _incoming_request_id(self, request: Request) -> str | None:
        value = request.headers.get("x-request-id")
        if not value:
            return None
        value = value.strip()
        if not value or len(value) > MAX_REQUEST_ID_LENGTH:
            return None
        return value
