"""
Correlation ID middleware for request tracing.

Extracts or generates a request id and remembers the caller's tenant
header so that every log line emitted while a feedback pipeline runs can
be tied back to the request that started it.

Headers:
- X-Request-ID: per-request id (generated when absent)
- X-Tenant-ID: tenant the request acts for (logging only; scoping is
  enforced by the API dependencies)
"""

import uuid
import logging
from contextvars import ContextVar
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
tenant_id_ctx: ContextVar[str] = ContextVar("tenant_id", default="")


def generate_id() -> str:
    """Generate a short unique ID suitable for logging."""
    return str(uuid.uuid4())[:12]


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds request and tenant ids to context variables for one request."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_id()
        tenant_id = request.headers.get("X-Tenant-ID", "")

        request_token = request_id_ctx.set(request_id)
        tenant_token = tenant_id_ctx.set(tenant_id)
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(request_token)
            tenant_id_ctx.reset(tenant_token)

        response.headers["X-Request-ID"] = request_id
        return response


def get_request_id() -> str:
    """Get the current request ID from context."""
    return request_id_ctx.get() or "unknown"


def get_tenant_id() -> str:
    """Get the tenant header of the current request, if any."""
    return tenant_id_ctx.get() or "unknown"


class CorrelationLogFilter(logging.Filter):
    """
    Logging filter that injects request and tenant ids into log records.

    Usage:
        handler = logging.StreamHandler()
        handler.addFilter(CorrelationLogFilter())
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(request_id)s] [%(tenant_id)s] %(message)s'
        ))
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        record.tenant_id = get_tenant_id()
        return True
