"""
Insight, Response and ActionPlan Schemas for the Feedback Analysis Pipeline

The language model emits camelCase keys (``sentimentScore``,
``isComplaint``); every model here accepts either spelling and dumps
snake_case.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class Urgency(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class IntentKind(str, Enum):
    """Closed set of side effects the action executor can perform."""
    CREATE_ACTION = "CREATE_ACTION"
    CREATE_CALLBACK = "CREATE_CALLBACK"
    CREATE_SUGGESTION = "CREATE_SUGGESTION"
    SEND_ALERT = "SEND_ALERT"
    DASHBOARD_FLAG = "DASHBOARD_FLAG"
    ESCALATE = "ESCALATE"
    TRACK_PRAISE = "TRACK_PRAISE"


STORE_METADATA = "STORE_METADATA"

IntentStatus = Literal["done", "failed", "queued", "flagged", "tracked", "escalation_pending", "planned"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Classification(CamelModel):
    """Complaint / praise / suggestion flags. Not mutually exclusive; None means not given."""
    is_complaint: Optional[bool] = None
    is_praise: Optional[bool] = None
    is_suggestion: Optional[bool] = None


class Insight(CamelModel):
    """Language-model enrichment of a single response."""
    sentiment: Sentiment
    sentiment_score: Optional[float] = None
    urgency: Optional[Urgency] = None
    emotions: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list, description="Most salient first")
    themes: list[str] = Field(default_factory=list)
    classification: Classification = Field(default_factory=Classification)
    summary: Optional[str] = None
    confidence: Optional[float] = None

    @field_validator("sentiment", mode="before")
    @classmethod
    def _lower_sentiment(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("urgency", mode="before")
    @classmethod
    def _normalize_urgency(cls, v):
        if v is None or v == "":
            return None
        if isinstance(v, str):
            v = v.strip().lower()
            # Prompt asks for low/medium/high
            if v == "medium":
                return "normal"
        return v

    @field_validator("emotions", "keywords", "themes", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return [] if v is None else v

    @field_validator("classification", mode="before")
    @classmethod
    def _none_to_classification(cls, v):
        return {} if v is None else v

    @field_validator("sentiment_score")
    @classmethod
    def _clamp_score(cls, v):
        if v is None:
            return v
        return max(-1.0, min(1.0, v))

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, v):
        if v is None:
            return v
        return max(0.0, min(1.0, v))


class AnswerItem(CamelModel):
    question_id: Optional[str] = None
    answer: Any = None

    @field_validator("question_id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return str(v) if v is not None else v


class ResponseSnapshot(CamelModel):
    """Shape of a stored response as seen by the rule engine and executor."""
    id: Optional[int] = None
    survey_id: Optional[int] = None
    review: Optional[str] = None
    rating: Optional[float] = Field(None, ge=0)
    score: Optional[int] = Field(None, ge=0, le=10)
    answers: list[AnswerItem] = Field(default_factory=list)

    @field_validator("answers", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return [] if v is None else v


class ActionPlan(BaseModel):
    """Ordered, de-duplicated intents plus the reason tags that produced them."""
    intents: list[IntentKind] = Field(default_factory=list)
    reasons: list[str] = Field(default_factory=list)
    triggered_at: datetime


class IntentResult(BaseModel):
    """Outcome of one pipeline step; ``intent`` is an IntentKind value or STORE_METADATA."""
    intent: str
    status: IntentStatus
    id: Optional[int] = None
    error: Optional[str] = None


# ==================== API payloads ====================

class AnalyzeRequest(BaseModel):
    response_id: int
    survey_id: int


class AnalyzeResponse(BaseModel):
    response_id: int
    results: list[IntentResult]


class PlanRequest(BaseModel):
    insight: Insight
    response: ResponseSnapshot = Field(default_factory=ResponseSnapshot)
