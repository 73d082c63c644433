"""
Request middleware for logging, timing, and request ID tracking.
"""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog

from rsvp.core.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Logged at debug
PROBE_PATHS = frozenset({"/health", "/metrics"})


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    1. Reuses the caller's X-Request-ID or assigns one
    2. Binds the request ID to structlog contextvars for every downstream line
    3. Logs one line per request with the matched route template, status and duration
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        start = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, method=request.method)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error("request_failed", path=request.url.path, error=str(e), duration_ms=_elapsed_ms(start))
            raise

        duration_ms = _elapsed_ms(start)
        # The router fills scope["route"] in place; template groups /events/{event_id}/join
        route = request.scope.get("route")
        fields = {
            "path": getattr(route, "path", request.url.path),
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        }
        if request.url.path in PROBE_PATHS:
            logger.debug("request_completed", **fields)
        elif response.status_code >= 500:
            logger.warning("request_completed", **fields)
        else:
            logger.info("request_completed", **fields)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response
