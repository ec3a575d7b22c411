"""
Feedback Pipeline - analyze a stored survey response and act on it.

Runs once per response after submission:
load -> entry gate -> insight (bounded timeout) -> rule engine -> executor.

A response whose analysis already carries ``analyzed_at`` is not processed
again: by default the recorded results of the first run are returned; with
PIPELINE_REPEAT_MODE=dry_run the plan is rebuilt from the stored analysis
and reported as ``planned`` without writing anything.

Before calling the insight provider a run claims the response with a
conditional update. A second run arriving while the claim is held gets a
409; a failed insight call releases the claim so the run can be retried.
"""

import asyncio
import logging
import time
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.metrics import track_pipeline_run
from app.core.sentry import add_breadcrumb, capture_exception
from app.exceptions import (
    ConflictError,
    InputInvalid,
    InsightTimeout,
    InsightUnavailable,
    NotFoundError,
    PersistenceFailed,
)
from app.services.feedback.action_executor import ActionExecutor, insight_from_analysis
from app.services.feedback.rule_engine import RuleEngine, coerce_response, rule_engine
from app.services.feedback.stores import ResponseStore
from app.services.insight_provider import InsightProvider
from app.services.notification_sink import NotificationSink

logger = logging.getLogger(__name__)


class FeedbackPipeline:
    """
    Orchestrates analysis and follow-up for one response at a time.

    Usage:
        pipeline = FeedbackPipeline(db, insight_provider)
        results = await pipeline.analyze_and_act(response_id, survey_id, tenant_id)
    """

    def __init__(
        self,
        db: AsyncSession,
        insight_provider: InsightProvider,
        notifications: Optional[NotificationSink] = None,
        engine: Optional[RuleEngine] = None,
        repeat_mode: Optional[str] = None,
        insight_timeout: Optional[float] = None,
        claim_ttl: Optional[float] = None,
    ):
        self.db = db
        self.insight_provider = insight_provider
        self.responses = ResponseStore(db)
        self.executor = ActionExecutor.for_session(db, notifications=notifications)
        self.engine = engine or rule_engine
        self.repeat_mode = repeat_mode or settings.PIPELINE_REPEAT_MODE
        self.insight_timeout = insight_timeout or settings.INSIGHT_TIMEOUT_SECONDS
        self.claim_ttl = claim_ttl or settings.PIPELINE_CLAIM_TTL_SECONDS

    async def analyze_and_act(self, response_id: int, survey_id: int, tenant_id: str) -> list[dict[str, Any]]:
        response = await self.responses.get(response_id, tenant_id)
        if not response:
            raise NotFoundError("Survey response", response_id)
        survey = await self.responses.get_survey(survey_id, tenant_id)
        if not survey:
            raise NotFoundError("Survey", survey_id)
        if response.survey_id != survey.id:
            raise InputInvalid(f"Survey response {response_id} does not belong to survey {survey_id}")

        try:
            snapshot = coerce_response(response)
        except InputInvalid:
            track_pipeline_run("invalid")
            raise

        add_breadcrumb(
            message=f"Analyzing response {response_id}",
            category="feedback.pipeline",
            data={"survey_id": survey_id, "tenant_id": tenant_id},
        )

        analysis = response.analysis or {}
        if analysis.get("analyzed_at"):
            return await self._repeat(response, snapshot, survey, tenant_id)
        if not await self.responses.claim(response_id, self.claim_ttl):
            # Lost to a concurrent run, which may have finished in the meantime
            response = await self.responses.get(response_id, tenant_id)
            if (response.analysis or {}).get("analyzed_at"):
                return await self._repeat(response, snapshot, survey, tenant_id)
            track_pipeline_run("in_progress")
            raise ConflictError(f"Survey response {response_id} is already being analyzed")

        started = time.monotonic()
        try:
            insight = await asyncio.wait_for(self.insight_provider.analyze(snapshot), timeout=self.insight_timeout)
        except asyncio.TimeoutError:
            await self._release(response_id, tenant_id)
            track_pipeline_run("insight_failed")
            logger.warning(f"Insight timed out after {self.insight_timeout}s for response {response_id}")
            raise InsightTimeout(self.insight_timeout)
        except InsightUnavailable as e:
            await self._release(response_id, tenant_id)
            track_pipeline_run("insight_failed")
            logger.warning(f"Insight unavailable for response {response_id}: {e}")
            raise

        plan = self.engine.evaluate(insight, snapshot)
        add_breadcrumb(
            message="Action plan built",
            category="feedback.pipeline",
            data={"intents": [i.value for i in plan.intents], "reasons": plan.reasons},
        )

        results = await self.executor.execute(plan, insight, snapshot, survey, tenant_id)

        try:
            await self.responses.save_results(response_id, results)
        except PersistenceFailed as e:
            capture_exception(e, {"response_id": response_id, "tenant_id": tenant_id})

        failed = [r for r in results if r["status"] == "failed"]
        track_pipeline_run(
            "completed_with_failures" if failed else "completed", duration=time.monotonic() - started
        )
        logger.info(
            f"Pipeline completed for response {response_id}: "
            f"{len(results) - 1} intent(s), {len(failed)} failure(s), reasons={plan.reasons}"
        )
        return results

    async def _release(self, response_id: int, tenant_id: str) -> None:
        try:
            await self.responses.release(response_id)
        except PersistenceFailed as e:
            # Claim expires after claim_ttl
            capture_exception(e, {"response_id": response_id, "tenant_id": tenant_id})

    async def _repeat(self, response, snapshot, survey, tenant_id: str) -> list[dict[str, Any]]:
        if self.repeat_mode == "dry_run":
            insight = insight_from_analysis(response.analysis)
            plan = self.engine.evaluate(insight, snapshot)
            track_pipeline_run("dry_run")
            logger.info(f"Response {response.id} already analyzed, returning dry-run plan")
            return await self.executor.execute(plan, insight, snapshot, survey, tenant_id, dry_run=True)

        track_pipeline_run("skipped")
        logger.info(f"Response {response.id} already analyzed, returning recorded results")
        return list(response.pipeline_results or [])


async def analyze_and_act(
    db: AsyncSession,
    response_id: int,
    survey_id: int,
    tenant_id: str,
    insight_provider: InsightProvider,
    notifications: Optional[NotificationSink] = None,
) -> list[dict[str, Any]]:
    """Run the feedback pipeline for one stored response."""
    pipeline = FeedbackPipeline(db, insight_provider, notifications=notifications)
    return await pipeline.analyze_and_act(response_id, survey_id, tenant_id)
