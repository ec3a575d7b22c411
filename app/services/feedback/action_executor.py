"""
Action Executor

Applies an ActionPlan for one survey response:

1. Persist the analysis record on the response (always first).
2. Build one IntentEffect per planned intent. Building is pure; every
   derived field (title, priority, category, due date, root cause,
   description, evidence) is decided here.
3. Apply each effect through a dispatcher keyed on IntentKind. Each apply
   commits on its own and a failure is reported in the results, never
   raised, so one broken intent does not stop the others.

Result entries are ``{"intent", "status", "id"?, "error"?}``; the first
entry is always the STORE_METADATA step.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.metrics import track_intent_result
from app.schemas.feedback import (
    STORE_METADATA,
    ActionPlan,
    Insight,
    IntentKind,
    IntentResult,
    Priority,
    ResponseSnapshot,
    Sentiment,
    Urgency,
)
from app.services.feedback.action_factory import ActionFactory
from app.services.feedback.rule_engine import coerce_insight, coerce_response
from app.services.feedback.stores import ActionStore, RecognitionStore, ResponseStore
from app.services.notification_sink import AlertEvent, DatabaseNotificationSink, NotificationSink

logger = logging.getLogger(__name__)


FEEDBACK_EXCERPT_LENGTH = 300
COMMENT_EXCERPT_LENGTH = 500
PROBLEM_STATEMENT_LENGTH = 2000
DESCRIPTION_KEYWORD_LIMIT = 5

DUE_IN = {
    Priority.HIGH.value: timedelta(hours=4),
    Priority.MEDIUM.value: timedelta(hours=24),
    Priority.LOW.value: timedelta(hours=72),
}
DEFAULT_DUE_IN = timedelta(hours=48)

# First hit wins, in this order
ROOT_CAUSE_KEYWORDS = (
    ("compensation", "compensation"),
    ("salary", "compensation"),
    ("pay", "compensation"),
    ("process", "process"),
    ("workflow", "process"),
    ("communication", "communication"),
    ("transparency", "communication"),
    ("management", "management"),
    ("leadership", "management"),
    ("workload", "workload"),
    ("burnout", "workload"),
    ("stress", "workload"),
    ("culture", "culture"),
    ("diversity", "culture"),
    ("resources", "resources"),
    ("tools", "resources"),
    ("training", "resources"),
)


# ==================== Derivations ====================

def categorize_nps(score: Optional[float]) -> Optional[str]:
    if score is None:
        return None
    if score >= 9:
        return "promoter"
    if score <= 6:
        return "detractor"
    return "passive"


def categorize_rating(rating: Optional[float], max_rating: float = 5) -> Optional[str]:
    if rating is None:
        return None
    pct = (rating / max_rating) * 100
    if pct >= 90:
        return "excellent"
    if pct >= 70:
        return "good"
    if pct >= 50:
        return "average"
    if pct >= 30:
        return "poor"
    return "very_poor"


def action_title(insight: Insight, response: ResponseSnapshot) -> str:
    if insight.classification.is_complaint:
        return "Customer Complaint"
    if response.score is not None and response.score <= 6:
        return "NPS Detractor Follow-up"
    if response.rating and response.rating <= 2:
        return "Low Rating Alert"
    if insight.urgency == Urgency.HIGH:
        return "Urgent Customer Issue"
    return "Customer Feedback Issue"


def action_priority(insight: Insight, response: ResponseSnapshot) -> str:
    negative = insight.sentiment == Sentiment.NEGATIVE
    if insight.urgency == Urgency.HIGH:
        return Priority.HIGH.value
    if negative and response.score is not None and response.score <= 3:
        return Priority.HIGH.value
    if response.rating and response.rating <= 1:
        return Priority.HIGH.value

    if negative:
        return Priority.MEDIUM.value
    if response.score is not None and response.score <= 6:
        return Priority.MEDIUM.value
    if response.rating and response.rating <= 2:
        return Priority.MEDIUM.value

    return Priority.LOW.value


def action_category(insight: Insight) -> str:
    if insight.classification.is_complaint:
        return "Customer Complaint"
    if insight.classification.is_suggestion:
        return "Improvement"
    if insight.sentiment == Sentiment.NEGATIVE:
        return "Negative Feedback"
    return "Survey Feedback"


def due_date(priority: str, now: datetime) -> datetime:
    return now + DUE_IN.get(priority, DEFAULT_DUE_IN)


def root_cause_category(insight: Insight) -> str:
    text = " ".join([*insight.themes, *insight.keywords, insight.summary or ""]).lower()
    for keyword, category in ROOT_CAUSE_KEYWORDS:
        if keyword in text:
            return category
    return "unknown"


def _num(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def build_action_description(insight: Insight, response: ResponseSnapshot, survey_title: Optional[str]) -> str:
    parts = [
        f"Survey: {survey_title or 'Unknown'}",
        f"Sentiment: {insight.sentiment.value}",
    ]
    if insight.urgency:
        parts.append(f"Urgency: {insight.urgency.value}")
    if response.rating:
        parts.append(f"Rating: {_num(response.rating)}/5")
    if response.score is not None:
        parts.append(f"NPS Score: {response.score}/10")
    if insight.summary:
        parts.append(f"\nSummary: {insight.summary}")

    if response.review:
        review = response.review
        if len(review) > FEEDBACK_EXCERPT_LENGTH:
            review = review[:FEEDBACK_EXCERPT_LENGTH] + "..."
        parts.append(f'\nCustomer Feedback: "{review}"')

    if insight.keywords:
        parts.append(f"\nKey Topics: {', '.join(insight.keywords[:DESCRIPTION_KEYWORD_LIMIT])}")
    if insight.emotions:
        parts.append(f"Detected Emotions: {', '.join(insight.emotions)}")

    return "\n".join(parts)


def build_analysis(
    insight: Insight,
    response: ResponseSnapshot,
    now: datetime,
    max_rating: float = 5,
) -> dict[str, Any]:
    """Analysis record written on the response by step A."""
    c = insight.classification
    return {
        "sentiment": insight.sentiment.value,
        "sentiment_score": insight.sentiment_score,
        "urgency": insight.urgency.value if insight.urgency else None,
        "emotions": list(insight.emotions),
        "keywords": list(insight.keywords),
        "themes": list(insight.themes),
        # Unstated flags fall back to the sentiment
        "classification": {
            "is_complaint": c.is_complaint if c.is_complaint is not None else insight.sentiment == Sentiment.NEGATIVE,
            "is_praise": c.is_praise if c.is_praise is not None else insight.sentiment == Sentiment.POSITIVE,
            "is_suggestion": c.is_suggestion if c.is_suggestion is not None else False,
        },
        # As returned by the provider, for re-planning
        "stated_classification": c.model_dump(),
        "summary": insight.summary or "",
        "nps_category": categorize_nps(response.score),
        "rating_category": categorize_rating(response.rating, max_rating),
        "analyzed_at": now.isoformat(),
    }


def insight_from_analysis(analysis: Mapping[str, Any]) -> Insight:
    """Rebuild the insight behind a stored analysis record, with the classification as stated."""
    record = dict(analysis)
    if record.get("stated_classification") is not None:
        record["classification"] = record["stated_classification"]
    return coerce_insight(record)


# ==================== Effects ====================

@dataclass(frozen=True)
class SurveyContext:
    id: Optional[int]
    title: Optional[str]

    @classmethod
    def of(cls, survey: Any) -> "SurveyContext":
        if survey is None:
            return cls(id=None, title=None)
        if isinstance(survey, Mapping):
            return cls(id=survey.get("id"), title=survey.get("title"))
        return cls(id=getattr(survey, "id", None), title=getattr(survey, "title", None))


@dataclass(frozen=True)
class IntentEffect:
    """What applying one intent will do. Built without touching any store."""
    intent: IntentKind
    action: Optional[dict[str, Any]] = None
    alert: Optional[AlertEvent] = None
    praise: Optional[dict[str, Any]] = None


def _evidence(response: ResponseSnapshot, text: str, sentiment: str, confidence: Optional[float] = None,
              with_confidence: bool = False) -> dict[str, Any]:
    evidence = {
        "response_count": 1,
        "respondent_count": 1,
        "response_ids": [response.id] if response.id is not None else [],
        "comment_excerpts": [
            {"text": text[:COMMENT_EXCERPT_LENGTH], "sentiment": sentiment, "response_id": response.id}
        ],
    }
    if with_confidence:
        evidence["confidence_score"] = round(confidence * 100) if confidence is not None else None
    return evidence


def _create_action_payload(insight, response, survey, now) -> dict[str, Any]:
    priority = action_priority(insight, response)
    description = build_action_description(insight, response, survey.title)
    sentiment = insight.sentiment.value
    urgency = insight.urgency.value if insight.urgency else None
    return {
        "title": action_title(insight, response),
        "description": description,
        "priority": priority,
        "category": action_category(insight),
        "tags": ["auto", "survey", sentiment],
        "problem_statement": insight.summary or description[:PROBLEM_STATEMENT_LENGTH],
        "root_cause": {"category": root_cause_category(insight), "summary": insight.summary},
        "priority_reason": f"AI analysis: {sentiment} sentiment, {urgency or 'normal'} urgency",
        "evidence": _evidence(
            response, response.review or insight.summary or "", sentiment,
            confidence=insight.confidence, with_confidence=True,
        ),
        "metadata": {
            "survey_id": survey.id,
            "response_id": response.id,
            "sentiment": sentiment,
            "urgency": urgency,
        },
        "due_date": due_date(priority, now),
    }


def _callback_payload(insight, response, survey, now) -> dict[str, Any]:
    return {
        "title": "Customer Callback Requested",
        "description": f'Customer requested to be contacted.\n\nFeedback: "{response.review or "No review provided"}"',
        "priority": Priority.HIGH.value,
        "category": "Callback",
        "tags": ["auto", "callback", "urgent"],
        "problem_statement": "Customer explicitly requested to be contacted",
        "urgency_reason": "Direct callback request from customer",
        "evidence": _evidence(response, response.review or "Callback requested", "negative"),
        "metadata": {
            "survey_id": survey.id,
            "response_id": response.id,
            "sentiment": insight.sentiment.value,
        },
        "due_date": due_date(Priority.HIGH.value, now),
    }


def _suggestion_payload(insight, response, survey, now) -> dict[str, Any]:
    return {
        "title": "Customer Suggestion",
        "description": f'Customer provided a suggestion.\n\nFeedback: "{response.review or "See survey response"}"',
        "priority": Priority.LOW.value,
        "category": "Improvement",
        "tags": ["auto", "suggestion", "improvement"],
        "problem_statement": insight.summary or "Customer suggestion for improvement",
        "evidence": _evidence(response, response.review or "Suggestion provided", insight.sentiment.value),
        "metadata": {
            "survey_id": survey.id,
            "response_id": response.id,
            "sentiment": insight.sentiment.value,
        },
        "due_date": due_date(Priority.LOW.value, now),
    }


def _alert_event(plan, insight, response, survey, tenant_id) -> AlertEvent:
    priority = action_priority(insight, response)
    message = insight.summary or response.review or "See survey response"
    return AlertEvent(
        tenant_id=tenant_id,
        title=f"Feedback alert: {survey.title or 'Unknown survey'}",
        message=message[:COMMENT_EXCERPT_LENGTH],
        priority=priority,
        survey_id=survey.id,
        response_id=response.id,
        payload={
            "reasons": list(plan.reasons),
            "sentiment": insight.sentiment.value,
            "urgency": insight.urgency.value if insight.urgency else None,
            "rating": response.rating,
            "score": response.score,
        },
    )


def build_effects(
    plan: ActionPlan,
    insight: Insight,
    response: ResponseSnapshot,
    survey: SurveyContext,
    tenant_id: str,
    now: datetime,
) -> list[IntentEffect]:
    """One effect per planned intent, in plan order."""
    effects = []
    for intent in plan.intents:
        if intent == IntentKind.CREATE_ACTION:
            effects.append(IntentEffect(intent, action=_create_action_payload(insight, response, survey, now)))
        elif intent == IntentKind.CREATE_CALLBACK:
            effects.append(IntentEffect(intent, action=_callback_payload(insight, response, survey, now)))
        elif intent == IntentKind.CREATE_SUGGESTION:
            effects.append(IntentEffect(intent, action=_suggestion_payload(insight, response, survey, now)))
        elif intent == IntentKind.SEND_ALERT:
            effects.append(IntentEffect(intent, alert=_alert_event(plan, insight, response, survey, tenant_id)))
        elif intent == IntentKind.TRACK_PRAISE:
            effects.append(
                IntentEffect(intent, praise={"sentiment": insight.sentiment.value, "summary": insight.summary})
            )
        else:
            effects.append(IntentEffect(intent))
    return effects


# ==================== Executor ====================

def _result(intent: str, status: str, id: Optional[int] = None, error: Optional[str] = None) -> dict[str, Any]:
    return IntentResult(intent=intent, status=status, id=id, error=error).model_dump(exclude_none=True)


class ActionExecutor:
    """
    Executes action plans against the feedback stores.

    Usage:
        executor = ActionExecutor.for_session(db)
        results = await executor.execute(plan, insight, response, survey, tenant_id)
    """

    def __init__(
        self,
        responses: ResponseStore,
        actions: ActionStore,
        recognitions: RecognitionStore,
        notifications: NotificationSink,
        max_rating: Optional[float] = None,
    ):
        self.responses = responses
        self.actions = actions
        self.recognitions = recognitions
        self.notifications = notifications
        self.max_rating = max_rating or settings.DEFAULT_RATING_SCALE

        self._dispatch: dict[IntentKind, Callable[..., Awaitable[dict[str, Any]]]] = {
            IntentKind.CREATE_ACTION: self._apply_action,
            IntentKind.CREATE_CALLBACK: self._apply_action,
            IntentKind.CREATE_SUGGESTION: self._apply_action,
            IntentKind.SEND_ALERT: self._apply_alert,
            IntentKind.DASHBOARD_FLAG: self._apply_flag,
            IntentKind.ESCALATE: self._apply_escalate,
            IntentKind.TRACK_PRAISE: self._apply_praise,
        }

    @classmethod
    def for_session(cls, db: AsyncSession, notifications: Optional[NotificationSink] = None) -> "ActionExecutor":
        return cls(
            responses=ResponseStore(db),
            actions=ActionStore(db),
            recognitions=RecognitionStore(db),
            notifications=notifications or DatabaseNotificationSink(db),
        )

    async def execute(
        self,
        plan: ActionPlan,
        insight: Union[Insight, Mapping[str, Any]],
        response: Union[ResponseSnapshot, Mapping[str, Any], Any],
        survey: Any,
        tenant_id: str,
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        insight = coerce_insight(insight)
        snapshot = coerce_response(response)
        survey_ctx = SurveyContext.of(survey)
        now = now or datetime.now(timezone.utc)

        effects = build_effects(plan, insight, snapshot, survey_ctx, tenant_id, now)

        if dry_run:
            logger.info(f"Dry run for response {snapshot.id}: {len(effects)} planned effect(s)")
            return [_result(STORE_METADATA, "planned")] + [_result(e.intent.value, "planned") for e in effects]

        results = [await self._store_analysis(insight, snapshot, now)]

        for effect in effects:
            apply = self._dispatch[effect.intent]
            try:
                result = await apply(effect, snapshot, survey_ctx, tenant_id)
            except Exception as e:
                logger.error(f"{effect.intent.value} failed for response {snapshot.id}: {e}")
                result = _result(effect.intent.value, "failed", error=str(e))
            track_intent_result(result["intent"], result["status"])
            results.append(result)

        return results

    async def _store_analysis(self, insight: Insight, response: ResponseSnapshot, now: datetime) -> dict[str, Any]:
        analysis = build_analysis(insight, response, now, self.max_rating)
        try:
            await self.responses.set_analysis(response.id, analysis)
            result = _result(STORE_METADATA, "done")
        except Exception as e:
            logger.error(f"Failed to store analysis metadata for response {response.id}: {e}")
            result = _result(STORE_METADATA, "failed", error=str(e))
        track_intent_result(result["intent"], result["status"])
        return result

    async def _apply_action(self, effect: IntentEffect, response, survey, tenant_id) -> dict[str, Any]:
        row = ActionFactory(tenant_id).build(effect.action)
        action = await self.actions.insert(row)
        logger.info(
            f"Action created: id={action.id} intent={effect.intent.value} "
            f"priority={action.priority} response={response.id}"
        )
        return _result(effect.intent.value, "done", id=action.id)

    async def _apply_alert(self, effect: IntentEffect, response, survey, tenant_id) -> dict[str, Any]:
        await self.notifications.enqueue(effect.alert)
        return _result(effect.intent.value, "queued")

    async def _apply_flag(self, effect: IntentEffect, response, survey, tenant_id) -> dict[str, Any]:
        await self.responses.flag_for_review(response.id)
        return _result(effect.intent.value, "flagged")

    async def _apply_escalate(self, effect: IntentEffect, response, survey, tenant_id) -> dict[str, Any]:
        # Escalation of existing actions is handled outside this pipeline
        logger.info(f"Escalation pending for response {response.id} (tenant {tenant_id})")
        return _result(effect.intent.value, "escalation_pending")

    async def _apply_praise(self, effect: IntentEffect, response, survey, tenant_id) -> dict[str, Any]:
        await self.recognitions.record(
            tenant_id=tenant_id,
            survey_id=survey.id,
            response_id=response.id,
            sentiment=effect.praise.get("sentiment"),
            summary=effect.praise.get("summary"),
        )
        return _result(effect.intent.value, "tracked")
