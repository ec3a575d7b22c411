"""
Segment and Contact Schemas for audience selection
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SegmentField(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    NAME = "name"
    COMPANY = "company"
    TAGS = "tags"
    LAST_ACTIVITY = "lastActivity"
    STATUS = "status"
    SEGMENT = "segment"
    RESPONSE_COUNT = "responseCount"
    AVG_RATING = "avgRating"
    CREATED_AT = "createdAt"


class SegmentOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    EXISTS = "exists"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    IN = "in"
    NOT_IN = "notIn"
    BEFORE = "before"
    AFTER = "after"


class SegmentLogic(str, Enum):
    AND = "AND"
    OR = "OR"


class SegmentCondition(BaseModel):
    """Single segment condition."""
    field: SegmentField
    operator: SegmentOperator
    value: Any = None


class SegmentRule(BaseModel):
    """Condition list combined under AND/OR. No conditions matches every contact."""
    logic: SegmentLogic = SegmentLogic.AND
    conditions: list[SegmentCondition] = Field(default_factory=list)

    @field_validator("logic", mode="before")
    @classmethod
    def _upper_logic(cls, v):
        return v.upper() if isinstance(v, str) else v


class SegmentBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    rules: SegmentRule


class SegmentCreate(SegmentBase):
    """Schema for creating a segment."""
    pass


class SegmentUpdate(BaseModel):
    """Schema for updating a segment."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    rules: Optional[SegmentRule] = None


class SegmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: str
    name: str
    description: Optional[str] = None
    rules: dict[str, Any]
    is_system: bool = False
    contact_count: int = 0
    last_evaluated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class SegmentListResponse(BaseModel):
    items: list[SegmentResponse]
    total: int
    page: int
    page_size: int


class ContactResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    status: Optional[str] = None
    segment: Optional[str] = None
    response_count: Optional[int] = None
    avg_rating: Optional[float] = None
    last_activity: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator("tags", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return [] if v is None else v


class SegmentPreviewRequest(BaseModel):
    rules: SegmentRule
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)


class SegmentContactsResponse(BaseModel):
    items: list[ContactResponse]
    total: int
    page: int
    limit: int


class SegmentCountResponse(BaseModel):
    segment_id: int
    count: int
