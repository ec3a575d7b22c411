"""
Survey Flow Schemas

Survey definitions as submitted by the builder UI (camelCase) or as loaded
from the database, reduced to what the flow validator inspects.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.schemas.feedback.insight import CamelModel


CHOICE_QUESTION_TYPES = frozenset({"radio", "checkbox", "yesno", "select", "imageChoice"})
MAX_LOGIC_RULES = 10


class LogicRule(CamelModel):
    condition: Optional[Any] = None
    next_question_id: Optional[str] = None

    @field_validator("next_question_id", mode="before")
    @classmethod
    def _stringify(cls, v):
        return str(v) if v not in (None, "") else None


class QuestionDefinition(CamelModel):
    id: Optional[str] = Field(None, validation_alias=AliasChoices("id", "questionId", "question_id"))
    type: Optional[str] = Field(None, validation_alias=AliasChoices("type", "questionType", "question_type"))
    question_text: Optional[str] = None
    title: Optional[str] = None
    options: list[Any] = Field(default_factory=list)
    logic_rules: list[LogicRule] = Field(default_factory=list)
    default_next_question_id: Optional[str] = None

    @field_validator("id", "default_next_question_id", mode="before")
    @classmethod
    def _stringify(cls, v):
        return str(v) if v not in (None, "") else None

    @field_validator("options", "logic_rules", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return [] if v is None else v


class TargetAudience(CamelModel):
    audience_type: Optional[str] = None
    segment_ids: list[Any] = Field(default_factory=list)


class SurveyDefinition(CamelModel):
    title: Optional[str] = None
    questions: list[QuestionDefinition] = Field(default_factory=list)
    target_audience: Optional[TargetAudience] = None

    @field_validator("questions", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return [] if v is None else v


class FlowValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)


class SurveyPublishResponse(BaseModel):
    """Schema for a successful publish."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    status: str
    published_at: Optional[datetime] = None
