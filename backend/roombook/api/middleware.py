"""
Request middleware for logging, timing, and request ID tracking.
"""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog

from roombook.core.logging import get_logger

logger = get_logger(__name__)

# Long-lived; logging their "duration" is meaningless
STREAMING_PATHS = ("/api/v1/bookings/stream",)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    1. Reuses the caller's X-Request-ID or assigns a new one
    2. Binds request id, method, path and caller role to structlog
    3. Logs status code and duration for regular requests
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        start_time = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            role=request.headers.get("X-User-Role", "student"),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            logger.error("request_failed", error=str(e), duration_ms=duration_ms)
            raise

        response.headers["X-Request-ID"] = request_id
        if request.url.path in STREAMING_PATHS:
            logger.info("stream_opened", status_code=response.status_code)
            return response

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response
