"""
Metrics collection middleware.

Tracks HTTP request counts and latency for the /metrics endpoint.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from typing import Callable

from app.core.metrics import track_request_start, track_request_end


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records request count, duration and in-flight gauge per route."""

    EXCLUDED_PATHS = {
        "/health",
        "/metrics",
        "/favicon.ico",
    }

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        path = request.url.path
        if path in self.EXCLUDED_PATHS:
            return await call_next(request)

        start_time = track_request_start()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            track_request_end(start_time=start_time, method=request.method, path=path, status_code=status_code)

        return response
