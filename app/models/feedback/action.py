"""
Action Model for the Feedback Analysis Pipeline

Follow-up work item derived from a survey response. In this pipeline the
action executor is the sole creator and always goes through the action
factory, so rows carry source='ai_generated' and status='pending' at birth.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Text, Enum as SQLEnum, JSON
from sqlalchemy.sql import func
from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Action(Base):
    """Tenant-owned follow-up task."""

    __tablename__ = "fb_actions"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)

    priority = Column(SQLEnum("high", "medium", "low", name="fb_action_priority_enum"), nullable=False)
    status = Column(
        SQLEnum("pending", "open", "in_progress", "resolved", name="fb_action_status_enum"),
        default="pending",
        index=True,
    )
    category = Column(String(100), default="general")
    source = Column(String(50), default="ai_generated")
    tags = Column(JSON, default=list)

    # Problem framing
    problem_statement = Column(Text)
    root_cause = Column(JSON)  # {"category": "process", "summary": "..."}
    priority_reason = Column(String(500))
    urgency_reason = Column(String(500))

    # {"response_count", "respondent_count", "response_ids", "comment_excerpts", "confidence_score"}
    evidence = Column(JSON)
    # {"survey_id", "response_id", "sentiment", "urgency"}
    meta = Column("metadata", JSON)

    # Weak back-references, denormalized from metadata for filtering
    survey_id = Column(Integer, index=True)
    response_id = Column(Integer, index=True)

    due_date = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Action id={self.id} priority={self.priority} title='{self.title[:30]}'>"
