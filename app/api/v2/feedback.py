"""
Feedback API Endpoints

- POST /feedback/analyze - Run the analysis pipeline for a stored response
- POST /feedback/plan - Evaluate the rule engine only (no side effects)
- GET /feedback/actions - Follow-up actions for the tenant
- GET /feedback/actions/{id} - One action
"""

from fastapi import APIRouter, Query
from sqlalchemy import select
from typing import Optional
import logging

from app.api.deps import DbSession, TenantId, Insights, Notifications
from app.exceptions import NotFoundError
from app.models.feedback import Action
from app.schemas.feedback import (
    ActionListResponse,
    ActionPlan,
    ActionResponse,
    AnalyzeRequest,
    AnalyzeResponse,
    PlanRequest,
)
from app.services.feedback import rule_engine
from app.services.feedback.pipeline import FeedbackPipeline
from app.services.feedback.stores import ActionStore
from app.schemas.errors import ANALYZE_ERROR_RESPONSES, READ_ERROR_RESPONSES

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/analyze", response_model=AnalyzeResponse, responses=ANALYZE_ERROR_RESPONSES)
async def analyze_response(
    request: AnalyzeRequest,
    db: DbSession,
    tenant_id: TenantId,
    insights: Insights,
    notifications: Notifications,
):
    """
    Analyze a submitted response and carry out its follow-up actions.

    A response is processed once; repeated calls return the results of the
    first run.
    """
    pipeline = FeedbackPipeline(db, insights, notifications=notifications)
    results = await pipeline.analyze_and_act(request.response_id, request.survey_id, tenant_id)
    return AnalyzeResponse(response_id=request.response_id, results=results)


@router.post("/plan", response_model=ActionPlan)
async def plan_actions(request: PlanRequest, tenant_id: TenantId):
    """Dry evaluation of the rule engine for an insight and response."""
    return rule_engine.evaluate(request.insight, request.response)


@router.get("/actions", response_model=ActionListResponse)
async def list_actions(
    db: DbSession,
    tenant_id: TenantId,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[str] = None,
    priority: Optional[str] = None,
    response_id: Optional[int] = None,
):
    """List actions with filtering."""
    items, total = await ActionStore(db).list_for_tenant(
        tenant_id,
        status=status,
        priority=priority,
        response_id=response_id,
        page=page,
        page_size=page_size,
    )
    return ActionListResponse(items=items, total=total, page=page, page_size=page_size)


@router.get("/actions/{action_id}", response_model=ActionResponse, responses=READ_ERROR_RESPONSES)
async def get_action(action_id: int, db: DbSession, tenant_id: TenantId):
    """Get a single action."""
    result = await db.execute(
        select(Action).where(Action.id == action_id, Action.tenant_id == tenant_id)
    )
    action = result.scalar_one_or_none()
    if not action:
        raise NotFoundError("Action", action_id)
    return action
