"""
Survey API Endpoints

Publishing is gated by the survey flow validator: a survey whose questions
are incomplete, reference missing questions, or loop back on themselves
stays in draft.
"""

from fastapi import APIRouter
from sqlalchemy import select
from datetime import datetime, timezone
import logging

from app.api.deps import DbSession, TenantId
from app.exceptions import ConflictError, NotFoundError, SurveyValidationFailed
from app.models.feedback import Survey
from app.schemas.feedback import FlowValidationResult, SurveyDefinition, SurveyPublishResponse
from app.schemas.errors import READ_ERROR_RESPONSES, WRITE_ERROR_RESPONSES
from app.services.feedback import validate_survey_flow
from app.services.feedback.survey_flow_validator import survey_definition_from_model

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/validate", response_model=FlowValidationResult)
async def validate_survey(survey: SurveyDefinition, tenant_id: TenantId):
    """Validate a survey definition without saving it."""
    return validate_survey_flow(survey)


@router.get("/{survey_id}/validation", response_model=FlowValidationResult, responses=READ_ERROR_RESPONSES)
async def validate_stored_survey(survey_id: int, db: DbSession, tenant_id: TenantId):
    """Validate a stored survey's current question flow."""
    survey = await _get_survey(db, survey_id, tenant_id)
    return validate_survey_flow(survey_definition_from_model(survey))


@router.post("/{survey_id}/publish", response_model=SurveyPublishResponse, responses=WRITE_ERROR_RESPONSES)
async def publish_survey(survey_id: int, db: DbSession, tenant_id: TenantId):
    """Publish a draft survey once its flow validates."""
    survey = await _get_survey(db, survey_id, tenant_id)
    if survey.status == "closed":
        raise ConflictError(f"Survey {survey_id} is closed and cannot be published")
    if survey.status == "active":
        return survey

    result = validate_survey_flow(survey_definition_from_model(survey))
    if not result.valid:
        logger.info(f"Publish rejected for survey {survey_id}: {len(result.errors)} error(s)")
        raise SurveyValidationFailed(result.errors)

    survey.status = "active"
    survey.published_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(survey)

    logger.info(f"Survey {survey_id} published for tenant {tenant_id}")
    return survey


async def _get_survey(db, survey_id: int, tenant_id: str) -> Survey:
    result = await db.execute(
        select(Survey).where(Survey.id == survey_id, Survey.tenant_id == tenant_id)
    )
    survey = result.scalar_one_or_none()
    if not survey:
        raise NotFoundError("Survey", survey_id)
    return survey
