"""Request logging middleware."""
import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("courier.server")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request and its response status and duration."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        start_time = time.perf_counter()
        request_id = request.headers.get("X-Request-ID", "-")
        logger.info("Request: %s %s request_id=%s", request.method, request.url.path, request_id)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Response: %s %s status=%d duration=%.2fms",
            request.method, request.url.path, response.status_code, duration_ms,
        )
        return response
