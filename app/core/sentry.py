"""
Sentry error tracking for the feedback API.

Provides:
- Exception capture for unhandled errors and failed pipeline runs
- Breadcrumbs for each pipeline stage
- Scrubbing of credentials and respondent free text before events leave
  the process
"""

import logging
from typing import Optional, Dict, Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

_sentry_initialized = False

SENSITIVE_HEADERS = ("authorization", "cookie", "x-api-key")
SENSITIVE_FIELDS = ("password", "token", "secret", "api_key", "review", "answers")


def init_sentry() -> None:
    """
    Initialize Sentry SDK with FastAPI integration.

    Called during application startup in main.py. A missing DSN leaves
    error tracking disabled.
    """
    global _sentry_initialized

    from app.config import settings

    if not settings.SENTRY_DSN:
        logger.info("Sentry DSN not configured, error tracking disabled")
        return

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        release=settings.VERSION,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.WARNING, event_level=logging.ERROR),
        ],
        before_send=filter_sensitive_data,
        send_default_pii=False,
        attach_stacktrace=True,
        max_breadcrumbs=50,
    )

    _sentry_initialized = True
    logger.info(f"Sentry initialized for {settings.ENVIRONMENT} environment")


def filter_sensitive_data(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Scrub auth headers, credentials and respondent text from an event."""
    request = event.get("request") or {}

    headers = request.get("headers")
    if isinstance(headers, dict):
        for header in list(headers):
            if header.lower() in SENSITIVE_HEADERS:
                headers[header] = "[Filtered]"

    data = request.get("data")
    if isinstance(data, dict):
        for key in SENSITIVE_FIELDS:
            if key in data:
                data[key] = "[Filtered]"

    return event


def capture_exception(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Capture an exception to Sentry with additional context.

    Returns:
        Sentry event ID if captured, None otherwise
    """
    if not _sentry_initialized:
        return None

    with sentry_sdk.new_scope() as scope:
        for key, value in (context or {}).items():
            scope.set_extra(key, value)
        return sentry_sdk.capture_exception(exception)


def add_breadcrumb(
    message: str,
    category: str,
    level: str = "info",
    data: Optional[Dict[str, Any]] = None,
) -> None:
    """Add a breadcrumb for debugging context."""
    if not _sentry_initialized:
        return

    sentry_sdk.add_breadcrumb(message=message, category=category, level=level, data=data)
