"""
Feedback Analysis Pipeline Pydantic Schemas
"""

from app.schemas.feedback.insight import (
    Sentiment, Urgency, Priority, IntentKind, IntentStatus, STORE_METADATA,
    Classification, Insight, AnswerItem, ResponseSnapshot,
    ActionPlan, IntentResult,
    AnalyzeRequest, AnalyzeResponse, PlanRequest,
)
from app.schemas.feedback.action import (
    RootCause, CommentExcerpt, Evidence,
    ActionResponse, ActionListResponse,
)
from app.schemas.feedback.survey import (
    CHOICE_QUESTION_TYPES, MAX_LOGIC_RULES,
    LogicRule, QuestionDefinition, TargetAudience, SurveyDefinition,
    FlowValidationResult, SurveyPublishResponse,
)
from app.schemas.feedback.segment import (
    SegmentField, SegmentOperator, SegmentLogic, SegmentCondition, SegmentRule,
    SegmentCreate, SegmentUpdate, SegmentResponse, SegmentListResponse,
    ContactResponse, SegmentPreviewRequest, SegmentContactsResponse, SegmentCountResponse,
)
