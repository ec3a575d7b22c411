from app.schemas.feedback import (
    Insight,
    ResponseSnapshot,
    ActionPlan,
    IntentResult,
    ActionResponse,
    ActionListResponse,
    SurveyDefinition,
    FlowValidationResult,
    SegmentRule,
    SegmentResponse,
)
