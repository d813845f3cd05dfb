"""
CORS for discovery pages embedded on customer sites.

The events feed is read-only and public, so only GET/HEAD/OPTIONS are
advertised and credentials are never allowed. Origins come from
CORS_ALLOWED_ORIGINS; a "*" entry admits every origin.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_METHODS = ("GET", "HEAD", "OPTIONS")
DEFAULT_REQUEST_HEADERS = ("Accept", "Accept-Language", "Content-Type", "X-Request-ID")
EXPOSED_HEADERS = ("X-Cache", "X-Request-ID", "Cache-Control")


class CORSMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        allowed_origins: list[str] | None = None,
        max_age: int = 600,
    ):
        super().__init__(app)
        self.allowed_origins = set(allowed_origins or [])
        self.allow_any_origin = "*" in self.allowed_origins
        self.max_age = max_age
        logger.info("CORS middleware initialized", allowed_origins=sorted(self.allowed_origins))

    def is_allowed(self, origin: str | None) -> bool:
        return bool(origin) and (self.allow_any_origin or origin in self.allowed_origins)

    def _origin_headers(self, origin: str) -> dict[str, str]:
        if self.allow_any_origin:
            return {"Access-Control-Allow-Origin": "*"}
        return {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}

    async def dispatch(self, request, call_next):
        origin = request.headers.get("origin")
        allowed = self.is_allowed(origin)

        if request.method == "OPTIONS" and origin:
            if not allowed:
                logger.warning("CORS preflight rejected", origin=origin, path=request.url.path)
                return Response(status_code=403, content="Origin not allowed")
            return Response(
                status_code=204,
                headers={
                    **self._origin_headers(origin),
                    "Access-Control-Allow-Methods": ", ".join(DEFAULT_METHODS),
                    "Access-Control-Allow-Headers": ", ".join(DEFAULT_REQUEST_HEADERS),
                    "Access-Control-Max-Age": str(self.max_age),
                },
            )

        response = await call_next(request)
        if allowed:
            response.headers.update(self._origin_headers(origin))
            response.headers["Access-Control-Expose-Headers"] = ", ".join(EXPOSED_HEADERS)
        return response
