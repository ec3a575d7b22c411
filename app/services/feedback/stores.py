"""
Feedback Stores

Thin async adapters over the feedback tables. Every write commits on its
own; a failed write is rolled back and surfaces as PersistenceFailed so the
action executor can report it per intent.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import select, func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import PersistenceFailed
from app.models.feedback import Action, PraiseRecognition, Survey, SurveyResponse

logger = logging.getLogger(__name__)


class ResponseStore:
    """Survey responses and their one-time analysis record."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, response_id: int, tenant_id: str) -> Optional[SurveyResponse]:
        result = await self.db.execute(
            select(SurveyResponse)
            .where(SurveyResponse.id == response_id, SurveyResponse.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_survey(self, survey_id: int, tenant_id: str) -> Optional[Survey]:
        result = await self.db.execute(
            select(Survey).where(Survey.id == survey_id, Survey.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def _current_analysis(self, response_id: int) -> dict[str, Any]:
        current = await self.db.scalar(
            select(SurveyResponse.analysis).where(SurveyResponse.id == response_id)
        )
        return dict(current or {})

    async def _write_analysis(self, operation: str, response_id: int, changes: dict[str, Any]) -> dict[str, Any]:
        try:
            analysis = await self._current_analysis(response_id)
            analysis.update(changes)
            await self.db.execute(
                update(SurveyResponse)
                .where(SurveyResponse.id == response_id)
                .values(analysis=analysis)
            )
            await self.db.commit()
            return analysis
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"{operation} failed for response {response_id}: {e}")
            raise PersistenceFailed(operation, e)

    async def set_analysis(self, response_id: int, analysis: dict[str, Any]) -> dict[str, Any]:
        """Merge ``analysis`` into the stored record, keeping flagged_for_review if already set."""
        return await self._write_analysis("set_analysis", response_id, analysis)

    async def flag_for_review(self, response_id: int) -> dict[str, Any]:
        """Idempotent: setting the flag twice leaves the same record."""
        return await self._write_analysis("flag_for_review", response_id, {"flagged_for_review": True})

    async def claim(self, response_id: int, stale_after: float) -> bool:
        """
        Mark the response as owned by the calling run.

        Returns False while another run holds a claim younger than
        ``stale_after`` seconds. A successful run keeps its claim.
        """
        now = datetime.now(timezone.utc)
        try:
            result = await self.db.execute(
                update(SurveyResponse)
                .where(
                    SurveyResponse.id == response_id,
                    or_(
                        SurveyResponse.pipeline_claimed_at.is_(None),
                        SurveyResponse.pipeline_claimed_at < now - timedelta(seconds=stale_after),
                    ),
                )
                .values(pipeline_claimed_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"claim failed for response {response_id}: {e}")
            raise PersistenceFailed("claim", e)
        return result.rowcount == 1

    async def release(self, response_id: int) -> None:
        """Drop the claim so a failed run can be retried."""
        try:
            await self.db.execute(
                update(SurveyResponse)
                .where(SurveyResponse.id == response_id)
                .values(pipeline_claimed_at=None)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"release failed for response {response_id}: {e}")
            raise PersistenceFailed("release", e)

    async def save_results(self, response_id: int, results: list[dict[str, Any]]) -> None:
        try:
            await self.db.execute(
                update(SurveyResponse)
                .where(SurveyResponse.id == response_id)
                .values(pipeline_results=results)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"save_results failed for response {response_id}: {e}")
            raise PersistenceFailed("save_results", e)


class ActionStore:
    """Tenant-owned follow-up actions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert(self, normalized: dict[str, Any]) -> Action:
        """Insert a row produced by ActionFactory.build."""
        row = dict(normalized)
        meta = row.pop("metadata", None) or {}
        action = Action(
            **row,
            meta=meta,
            survey_id=meta.get("survey_id"),
            response_id=meta.get("response_id"),
        )
        try:
            self.db.add(action)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Action insert failed for tenant {row.get('tenant_id')}: {e}")
            raise PersistenceFailed("insert_action", e)
        return action

    async def count_for_response(self, tenant_id: str, response_id: int) -> int:
        return await self.db.scalar(
            select(func.count(Action.id)).where(Action.tenant_id == tenant_id, Action.response_id == response_id)
        )

    async def list_for_tenant(
        self,
        tenant_id: str,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        response_id: Optional[int] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Action], int]:
        query = select(Action).where(Action.tenant_id == tenant_id)
        if status:
            query = query.where(Action.status == status)
        if priority:
            query = query.where(Action.priority == priority)
        if response_id:
            query = query.where(Action.response_id == response_id)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar()

        offset = (page - 1) * page_size
        query = query.order_by(Action.created_at.desc(), Action.id.desc()).offset(offset).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total


class RecognitionStore:
    """Praise recognition log."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        tenant_id: str,
        survey_id: Optional[int],
        response_id: Optional[int],
        sentiment: Optional[str],
        summary: Optional[str],
    ) -> PraiseRecognition:
        entry = PraiseRecognition(
            tenant_id=tenant_id,
            survey_id=survey_id,
            response_id=response_id,
            sentiment=sentiment,
            summary=summary,
        )
        try:
            self.db.add(entry)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Praise recognition failed for response {response_id}: {e}")
            raise PersistenceFailed("record_praise", e)

        logger.info(f"Praise tracked for recognition: response={response_id} survey={survey_id} tenant={tenant_id}")
        return entry
