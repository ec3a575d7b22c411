"""
Segment API Endpoints

Includes:
- Standard CRUD operations for segments
- Rule preview before saving
- Segment membership: contacts, count, single-contact check
"""

from fastapi import APIRouter, Query, status
from typing import Optional
import logging

from app.api.deps import DbSession, TenantId
from app.schemas.feedback import (
    SegmentContactsResponse,
    SegmentCountResponse,
    SegmentCreate,
    SegmentListResponse,
    SegmentPreviewRequest,
    SegmentResponse,
    SegmentUpdate,
)
from app.services.feedback import SegmentationService
from app.schemas.errors import WRITE_ERROR_RESPONSES

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=SegmentListResponse)
async def list_segments(
    db: DbSession,
    tenant_id: TenantId,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    """List segments for the tenant."""
    items, total = await SegmentationService(db).list_segments(tenant_id, page=page, page_size=page_size)
    return SegmentListResponse(items=items, total=total, page=page, page_size=page_size)


@router.post("", response_model=SegmentResponse, status_code=status.HTTP_201_CREATED, responses=WRITE_ERROR_RESPONSES)
async def create_segment(data: SegmentCreate, db: DbSession, tenant_id: TenantId):
    """Create a segment. Rules are compiled before saving."""
    return await SegmentationService(db).create_segment(tenant_id, data)


@router.post("/preview", response_model=SegmentContactsResponse)
async def preview_segment(request: SegmentPreviewRequest, db: DbSession, tenant_id: TenantId):
    """Preview the contacts a rule set selects without saving it."""
    items, total = await SegmentationService(db).preview(
        tenant_id, request.rules, page=request.page, limit=request.limit
    )
    return SegmentContactsResponse(items=items, total=total, page=request.page, limit=request.limit)


@router.get("/{segment_id}", response_model=SegmentResponse)
async def get_segment(segment_id: int, db: DbSession, tenant_id: TenantId):
    """Get a single segment."""
    return await SegmentationService(db).get_segment(tenant_id, segment_id)


@router.patch("/{segment_id}", response_model=SegmentResponse)
async def update_segment(segment_id: int, data: SegmentUpdate, db: DbSession, tenant_id: TenantId):
    """Update a segment."""
    return await SegmentationService(db).update_segment(tenant_id, segment_id, data)


@router.delete("/{segment_id}", status_code=status.HTTP_204_NO_CONTENT, responses=WRITE_ERROR_RESPONSES)
async def delete_segment(segment_id: int, db: DbSession, tenant_id: TenantId):
    """Delete a segment. System segments cannot be deleted."""
    await SegmentationService(db).delete_segment(tenant_id, segment_id)


@router.get("/{segment_id}/contacts", response_model=SegmentContactsResponse)
async def list_segment_contacts(
    segment_id: int,
    db: DbSession,
    tenant_id: TenantId,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
):
    """Contacts currently matching the segment's rules."""
    items, total = await SegmentationService(db).segment_contacts(
        tenant_id, segment_id, page=page, limit=limit, search=search
    )
    return SegmentContactsResponse(items=items, total=total, page=page, limit=limit)


@router.get("/{segment_id}/count", response_model=SegmentCountResponse)
async def count_segment_contacts(segment_id: int, db: DbSession, tenant_id: TenantId):
    """Count members and refresh the stored contact count."""
    count = await SegmentationService(db).count_members(tenant_id, segment_id)
    return SegmentCountResponse(segment_id=segment_id, count=count)


@router.get("/{segment_id}/contacts/{contact_id}", response_model=bool)
async def contact_in_segment(segment_id: int, contact_id: int, db: DbSession, tenant_id: TenantId):
    """Whether a single contact currently matches the segment."""
    return await SegmentationService(db).contact_in_segment(tenant_id, segment_id, contact_id)
