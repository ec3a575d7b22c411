# Feedback Analysis Pipeline Models
from app.models.feedback.contact import Contact, Segment
from app.models.feedback.survey import Survey, SurveyQuestion, SurveyResponse
from app.models.feedback.action import Action
from app.models.feedback.notification import AlertNotification, PraiseRecognition

__all__ = [
    # Audience
    "Contact",
    "Segment",
    # Surveys
    "Survey",
    "SurveyQuestion",
    "SurveyResponse",
    # Actions
    "Action",
    # Outbox
    "AlertNotification",
    "PraiseRecognition",
]
