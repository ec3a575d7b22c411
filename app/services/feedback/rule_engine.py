"""
Feedback Rule Engine

Maps an (Insight, Response) pair to an ActionPlan: an ordered,
de-duplicated list of intents plus the reason tags that fired.

Rules, evaluated in order:
1. negative + high urgency  -> CREATE_ACTION, SEND_ALERT, ESCALATE
2. negative                 -> DASHBOARD_FLAG, CREATE_ACTION
3. rating <= 2              -> CREATE_ACTION, SEND_ALERT
4. NPS score <= 6           -> CREATE_ACTION
5. negative keywords        -> CREATE_ACTION, DASHBOARD_FLAG
6. contact requested        -> CREATE_CALLBACK, SEND_ALERT
7. complaint classified     -> CREATE_ACTION
8. suggestion classified    -> CREATE_SUGGESTION
9. positive + praise        -> TRACK_PRAISE
10. high urgency, no alert  -> SEND_ALERT
"""

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from app.exceptions import InputInvalid
from app.schemas.feedback import (
    ActionPlan,
    Insight,
    IntentKind,
    ResponseSnapshot,
    Sentiment,
    Urgency,
)

logger = logging.getLogger(__name__)


NEGATIVE_KEYWORDS = (
    "terrible", "awful", "horrible", "worst", "hate", "angry", "furious",
    "disappointed", "unacceptable", "disgusting", "pathetic", "useless",
    "scam", "fraud", "lawsuit", "lawyer", "legal", "report", "complain",
    "refund", "cancel", "never again", "waste of money", "rip off",
)

CONTACT_REQUEST_PHRASES = (
    "contact me", "call me", "reach out", "get in touch", "phone me",
    "email me", "callback", "call back", "speak to someone", "talk to manager",
    "need help", "urgent help", "please call", "waiting for call",
)

LOW_RATING_THRESHOLD = 2
NPS_DETRACTOR_THRESHOLD = 6


def find_negative_keywords(text: Optional[str]) -> list[str]:
    """Negative vocabulary terms present in ``text``, in vocabulary order."""
    if not text:
        return []
    lowered = text.lower()
    return [kw for kw in NEGATIVE_KEYWORDS if kw in lowered]


def requests_contact(text: Optional[str]) -> bool:
    """True when ``text`` asks to be called back or contacted."""
    if not text:
        return False
    lowered = text.lower()
    return any(phrase in lowered for phrase in CONTACT_REQUEST_PHRASES)


def _answer_text(answer: Any) -> str:
    if not answer:
        return ""
    if isinstance(answer, (list, tuple)):
        return ", ".join(str(a) for a in answer if a)
    return str(answer)


def response_text(response: ResponseSnapshot) -> str:
    """Review plus every answer, whitespace-joined."""
    parts = [response.review or ""] + [_answer_text(a.answer) for a in response.answers]
    return " ".join(p for p in parts if p)


def _error_messages(exc: PydanticValidationError) -> list[str]:
    return [
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" if err["loc"] else err["msg"]
        for err in exc.errors(include_url=False)
    ]


def coerce_insight(insight: Union[Insight, Mapping[str, Any]]) -> Insight:
    """Validate a mapping into an Insight, raising InputInvalid on missing fields."""
    if isinstance(insight, Insight):
        return insight
    try:
        return Insight.model_validate(insight)
    except PydanticValidationError as e:
        raise InputInvalid("Insight is missing required fields", errors=_error_messages(e))


def coerce_response(response: Union[ResponseSnapshot, Mapping[str, Any], Any]) -> ResponseSnapshot:
    """Validate a mapping or ORM row into a ResponseSnapshot, raising InputInvalid."""
    if isinstance(response, ResponseSnapshot):
        return response
    try:
        if isinstance(response, Mapping):
            return ResponseSnapshot.model_validate(response)
        return ResponseSnapshot.model_validate(
            {
                "id": getattr(response, "id", None),
                "survey_id": getattr(response, "survey_id", None),
                "review": getattr(response, "review", None),
                "rating": getattr(response, "rating", None),
                "score": getattr(response, "score", None),
                "answers": getattr(response, "answers", None),
            }
        )
    except PydanticValidationError as e:
        raise InputInvalid("Response has an invalid shape", errors=_error_messages(e))


class RuleEngine:
    """Stateless evaluator; one instance can be shared across requests."""

    def evaluate(
        self,
        insight: Union[Insight, Mapping[str, Any]],
        response: Union[ResponseSnapshot, Mapping[str, Any], None] = None,
        now: Optional[datetime] = None,
    ) -> ActionPlan:
        insight = coerce_insight(insight)
        response = coerce_response(response if response is not None else {})

        intents: list[IntentKind] = []
        reasons: list[str] = []

        def add(*kinds: IntentKind) -> None:
            for kind in kinds:
                if kind not in intents:
                    intents.append(kind)

        text = response_text(response)
        negative = insight.sentiment == Sentiment.NEGATIVE
        high_urgency = insight.urgency == Urgency.HIGH
        classification = insight.classification

        # Rule 1
        if negative and high_urgency:
            add(IntentKind.CREATE_ACTION, IntentKind.SEND_ALERT, IntentKind.ESCALATE)
            reasons.append("negative_high_urgency")

        # Rule 2
        if negative:
            add(IntentKind.DASHBOARD_FLAG, IntentKind.CREATE_ACTION)
            reasons.append("negative_sentiment")

        # Rule 3
        if response.rating is not None and response.rating <= LOW_RATING_THRESHOLD:
            add(IntentKind.CREATE_ACTION, IntentKind.SEND_ALERT)
            reasons.append("low_rating")

        # Rule 4
        if response.score is not None and response.score <= NPS_DETRACTOR_THRESHOLD:
            add(IntentKind.CREATE_ACTION)
            reasons.append("nps_detractor")

        # Rule 5
        found = find_negative_keywords(text)
        if found:
            add(IntentKind.CREATE_ACTION, IntentKind.DASHBOARD_FLAG)
            reasons.append(f"negative_keywords:{','.join(found[:3])}")

        # Rule 6
        if requests_contact(text):
            add(IntentKind.CREATE_CALLBACK, IntentKind.SEND_ALERT)
            reasons.append("contact_requested")

        # Rule 7
        if classification.is_complaint:
            add(IntentKind.CREATE_ACTION)
            reasons.append("complaint_classified")

        # Rule 8
        if classification.is_suggestion:
            add(IntentKind.CREATE_SUGGESTION)
            reasons.append("suggestion_received")

        # Rule 9
        if insight.sentiment == Sentiment.POSITIVE and classification.is_praise:
            add(IntentKind.TRACK_PRAISE)
            reasons.append("praise_received")

        # Rule 10
        if high_urgency and IntentKind.SEND_ALERT not in intents:
            add(IntentKind.SEND_ALERT)
            reasons.append("high_urgency")

        plan = ActionPlan(
            intents=intents,
            reasons=reasons,
            triggered_at=now or datetime.now(timezone.utc),
        )
        logger.debug(f"Rule engine: intents={[i.value for i in intents]} reasons={reasons}")
        return plan


rule_engine = RuleEngine()
