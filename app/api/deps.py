"""
FastAPI Dependencies

Provides dependency injection for database sessions, the calling tenant,
and the pipeline's external collaborators.

Authentication and role gating happen upstream; the tenant arrives in the
``X-Tenant-ID`` header and every query below is scoped to it.
"""

from typing import Annotated
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.database import get_db
from app.services.insight_provider import InsightProvider, get_insight_provider
from app.services.notification_sink import DatabaseNotificationSink, NotificationSink

logger = logging.getLogger(__name__)

MAX_TENANT_ID_LENGTH = 64


async def get_tenant_id(
    x_tenant_id: Annotated[str | None, Header(alias="X-Tenant-ID")] = None,
) -> str:
    """Resolve the tenant the request acts for."""
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required",
        )
    if len(tenant_id) > MAX_TENANT_ID_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"X-Tenant-ID must be at most {MAX_TENANT_ID_LENGTH} characters",
        )
    return tenant_id


async def get_notification_sink(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> NotificationSink:
    return DatabaseNotificationSink(db)


# Type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
TenantId = Annotated[str, Depends(get_tenant_id)]
Insights = Annotated[InsightProvider, Depends(get_insight_provider)]
Notifications = Annotated[NotificationSink, Depends(get_notification_sink)]
