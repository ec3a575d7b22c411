from app.models.feedback import (
    Contact,
    Segment,
    Survey,
    SurveyQuestion,
    SurveyResponse,
    Action,
    AlertNotification,
    PraiseRecognition,
)

__all__ = [
    "Contact",
    "Segment",
    "Survey",
    "SurveyQuestion",
    "SurveyResponse",
    "Action",
    "AlertNotification",
    "PraiseRecognition",
]
