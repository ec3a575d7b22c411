"""
Middleware modules for the feedback API.

Provides request processing middleware for:
- Request/tenant id tracking for log correlation
- Prometheus-style request metrics
"""

from .correlation import CorrelationIdMiddleware, CorrelationLogFilter, request_id_ctx, tenant_id_ctx
from .metrics import MetricsMiddleware

__all__ = [
    "CorrelationIdMiddleware",
    "CorrelationLogFilter",
    "request_id_ctx",
    "tenant_id_ctx",
    "MetricsMiddleware",
]
