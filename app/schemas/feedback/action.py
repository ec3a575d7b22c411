"""
Action Schemas
"""

from datetime import datetime
from typing import Optional, Any

from pydantic import BaseModel, ConfigDict, Field, AliasChoices


class RootCause(BaseModel):
    category: str = "unknown"
    summary: Optional[str] = None


class CommentExcerpt(BaseModel):
    text: str = ""
    sentiment: Optional[str] = None
    response_id: Optional[int] = None


class Evidence(BaseModel):
    response_count: int = 1
    respondent_count: int = 1
    response_ids: list[int] = Field(default_factory=list)
    comment_excerpts: list[CommentExcerpt] = Field(default_factory=list)
    confidence_score: Optional[int] = None


class ActionResponse(BaseModel):
    """Schema for action response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: str
    title: str
    description: str
    priority: str
    status: str
    category: Optional[str] = None
    source: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    problem_statement: Optional[str] = None
    root_cause: Optional[dict[str, Any]] = None
    priority_reason: Optional[str] = None
    urgency_reason: Optional[str] = None
    evidence: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = Field(None, validation_alias=AliasChoices("meta", "metadata"))
    survey_id: Optional[int] = None
    response_id: Optional[int] = None
    due_date: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ActionListResponse(BaseModel):
    """Paginated action list response."""
    items: list[ActionResponse]
    total: int
    page: int
    page_size: int
