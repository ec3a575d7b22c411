"""
Survey Models for the Feedback Analysis Pipeline

- Survey: tenant-owned questionnaire with a branching question graph
- SurveyQuestion: node of that graph; logic rules point at other nodes by
  their stable ``question_id``
- SurveyResponse: one submission; immutable after submit except for the
  ``analysis`` record written once by the action executor
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Text,
    ForeignKey, Enum as SQLEnum, JSON, UniqueConstraint
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Survey(Base):
    """
    Survey definition. Publishing moves it from draft to active and is
    gated by the survey flow validator.
    """
    __tablename__ = "fb_surveys"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)

    title = Column(String(300), nullable=False)
    description = Column(Text)

    status = Column(
        SQLEnum('draft', 'active', 'closed', name='fb_survey_status_enum'),
        default='draft'
    )

    # {"audience_type": "all" | "segment" | "custom", "segment_ids": [...]}
    target_audience = Column(JSON)

    published_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    questions = relationship(
        "SurveyQuestion",
        back_populates="survey",
        cascade="all, delete-orphan",
        order_by="SurveyQuestion.position",
        lazy="selectin",
    )
    responses = relationship("SurveyResponse", back_populates="survey", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Survey id={self.id} title='{self.title}' status={self.status}>"


class SurveyQuestion(Base):
    """
    Question node within a survey.

    ``logic_rules`` is a list of ``{"condition": {...}, "next_question_id": "q3"}``.
    """
    __tablename__ = "fb_survey_questions"
    __table_args__ = (
        UniqueConstraint("survey_id", "question_id", name="uq_fb_survey_question_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    survey_id = Column(Integer, ForeignKey("fb_surveys.id"), nullable=False, index=True)

    question_id = Column(String(64), nullable=False)
    position = Column(Integer, default=0)

    question_type = Column(String(50), nullable=False)  # text, rating, nps, radio, checkbox, ...
    question_text = Column(Text)
    title = Column(String(300))
    options = Column(JSON, default=list)

    logic_rules = Column(JSON, default=list)
    default_next_question_id = Column(String(64))

    survey = relationship("Survey", back_populates="questions")

    def __repr__(self):
        return f"<SurveyQuestion survey={self.survey_id} question_id={self.question_id} type={self.question_type}>"


class SurveyResponse(Base):
    """
    A single survey submission.

    ``analysis`` holds sentiment, urgency, emotions, keywords, themes,
    classification, summary, nps_category, rating_category, analyzed_at and
    flagged_for_review. ``pipeline_results`` records the outcome list of the
    one analyze-and-act run so repeated calls can report it without redoing
    side effects. ``pipeline_claimed_at`` keeps two concurrent runs from
    both acting on the same response.
    """
    __tablename__ = "fb_survey_responses"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    survey_id = Column(Integer, ForeignKey("fb_surveys.id"), nullable=False, index=True)
    contact_id = Column(Integer, ForeignKey("fb_contacts.id"), index=True)

    review = Column(Text)
    rating = Column(Float)  # 1-5
    score = Column(Integer)  # NPS 0-10
    answers = Column(JSON, default=list)  # [{"question_id": "q1", "answer": "..."}]

    analysis = Column(JSON)
    pipeline_results = Column(JSON)
    pipeline_claimed_at = Column(DateTime(timezone=True))  # set while a run owns the response

    submitted_at = Column(DateTime(timezone=True), default=_utcnow)

    survey = relationship("Survey", back_populates="responses")

    def __repr__(self):
        return f"<SurveyResponse id={self.id} survey={self.survey_id} rating={self.rating} score={self.score}>"
