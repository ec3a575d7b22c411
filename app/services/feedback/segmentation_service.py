"""
Segmentation Service

Tenant-scoped segment CRUD and membership queries. Rules are compiled once
per call so the count and the page of a single request share the same
reference time.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ConflictError, NotFoundError
from app.models.feedback import Contact, Segment
from app.schemas.feedback.segment import SegmentCreate, SegmentRule, SegmentUpdate
from app.services.feedback.segment_query_compiler import CompiledSegment, SegmentQueryCompiler

logger = logging.getLogger(__name__)


class SegmentationService:
    """Segments and the contacts they select."""

    def __init__(self, db: AsyncSession, now: Optional[datetime] = None):
        self.db = db
        self.compiler = SegmentQueryCompiler(now=now)

    # ==================== Segments ====================

    async def list_segments(self, tenant_id: str, page: int = 1, page_size: int = 20) -> tuple[list[Segment], int]:
        query = select(Segment).where(Segment.tenant_id == tenant_id)
        total = (await self.db.execute(select(func.count()).select_from(query.subquery()))).scalar()

        offset = (page - 1) * page_size
        result = await self.db.execute(query.order_by(Segment.name).offset(offset).limit(page_size))
        return list(result.scalars().all()), total

    async def get_segment(self, tenant_id: str, segment_id: int) -> Segment:
        result = await self.db.execute(
            select(Segment).where(Segment.id == segment_id, Segment.tenant_id == tenant_id)
        )
        segment = result.scalar_one_or_none()
        if not segment:
            raise NotFoundError("Segment", segment_id)
        return segment

    async def create_segment(self, tenant_id: str, data: SegmentCreate) -> Segment:
        compiled = self.compiler.compile(data.rules)
        await self._ensure_name_free(tenant_id, data.name)

        segment = Segment(
            tenant_id=tenant_id,
            name=data.name,
            description=data.description,
            rules=data.rules.model_dump(mode="json"),
        )
        segment.contact_count = await self._count(tenant_id, compiled)
        segment.last_evaluated_at = compiled.now
        await self._commit(segment, data.name)

        logger.info(f"Created segment {segment.id} '{segment.name}' for tenant {tenant_id}")
        return segment

    async def update_segment(self, tenant_id: str, segment_id: int, data: SegmentUpdate) -> Segment:
        segment = await self.get_segment(tenant_id, segment_id)
        update_data = data.model_dump(exclude_unset=True)

        if data.rules is not None:
            compiled = self.compiler.compile(data.rules)
            segment.rules = data.rules.model_dump(mode="json")
            segment.contact_count = await self._count(tenant_id, compiled)
            segment.last_evaluated_at = compiled.now
        if update_data.get("name") and update_data["name"] != segment.name:
            await self._ensure_name_free(tenant_id, update_data["name"])
            segment.name = update_data["name"]
        if "description" in update_data:
            segment.description = update_data["description"]

        await self._commit(segment, segment.name)
        return segment

    async def delete_segment(self, tenant_id: str, segment_id: int) -> None:
        segment = await self.get_segment(tenant_id, segment_id)
        if segment.is_system:
            raise ConflictError(f"Segment {segment_id} is a system segment and cannot be deleted")
        await self.db.delete(segment)
        await self.db.commit()
        logger.info(f"Deleted segment {segment_id} for tenant {tenant_id}")

    # ==================== Membership ====================

    async def preview(
        self, tenant_id: str, rules: SegmentRule, page: int = 1, limit: int = 20
    ) -> tuple[list[Contact], int]:
        """Contacts matching ``rules`` without saving a segment."""
        compiled = self.compiler.compile(rules)
        return await self._page(tenant_id, compiled, page, limit)

    async def segment_contacts(
        self,
        tenant_id: str,
        segment_id: int,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
    ) -> tuple[list[Contact], int]:
        segment = await self.get_segment(tenant_id, segment_id)
        compiled = self.compiler.compile(segment.rules)
        return await self._page(tenant_id, compiled, page, limit, search)

    async def count_members(self, tenant_id: str, segment_id: int) -> int:
        """Count members and refresh the cached contact_count."""
        segment = await self.get_segment(tenant_id, segment_id)
        compiled = self.compiler.compile(segment.rules)
        count = await self._count(tenant_id, compiled)

        segment.contact_count = count
        segment.last_evaluated_at = compiled.now
        await self.db.commit()
        return count

    async def contact_in_segment(self, tenant_id: str, segment_id: int, contact_id: int) -> bool:
        segment = await self.get_segment(tenant_id, segment_id)
        result = await self.db.execute(
            select(Contact).where(Contact.id == contact_id, Contact.tenant_id == tenant_id)
        )
        contact = result.scalar_one_or_none()
        if not contact:
            raise NotFoundError("Contact", contact_id)
        return self.compiler.compile(segment.rules).matches(contact)

    # ==================== Helpers ====================

    def _members(self, tenant_id: str, compiled: CompiledSegment, search: Optional[str] = None):
        query = select(Contact).where(Contact.tenant_id == tenant_id, compiled.clause)
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(Contact.name.ilike(pattern), Contact.email.ilike(pattern), Contact.company.ilike(pattern))
            )
        return query

    async def _count(self, tenant_id: str, compiled: CompiledSegment) -> int:
        query = self._members(tenant_id, compiled)
        return (await self.db.execute(select(func.count()).select_from(query.subquery()))).scalar()

    async def _page(
        self,
        tenant_id: str,
        compiled: CompiledSegment,
        page: int,
        limit: int,
        search: Optional[str] = None,
    ) -> tuple[list[Contact], int]:
        query = self._members(tenant_id, compiled, search)
        total = (await self.db.execute(select(func.count()).select_from(query.subquery()))).scalar()

        offset = (page - 1) * limit
        result = await self.db.execute(query.order_by(Contact.id).offset(offset).limit(limit))
        return list(result.scalars().all()), total

    async def _ensure_name_free(self, tenant_id: str, name: str) -> None:
        existing = await self.db.scalar(
            select(Segment.id).where(Segment.tenant_id == tenant_id, Segment.name == name)
        )
        if existing:
            raise ConflictError(f"A segment named '{name}' already exists")

    async def _commit(self, segment: Segment, name: str) -> None:
        self.db.add(segment)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(f"A segment named '{name}' already exists")
        await self.db.refresh(segment)
