"""
Notification Sink - out-of-band alert outbox.

SEND_ALERT only enqueues; delivery (email, Slack, push) is owned by
whatever drains ``fb_alert_notifications``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import PersistenceFailed
from app.models.feedback import AlertNotification

logger = logging.getLogger(__name__)


@dataclass
class AlertEvent:
    """Alert raised by the feedback pipeline."""

    tenant_id: str
    title: str
    message: str
    priority: str = "high"
    event_type: str = "feedback_alert"
    survey_id: Optional[int] = None
    response_id: Optional[int] = None
    payload: Dict[str, Any] = field(default_factory=dict)


class NotificationSink:
    """Interface for alert outboxes."""

    async def enqueue(self, event: AlertEvent) -> Optional[int]:
        raise NotImplementedError


class DatabaseNotificationSink(NotificationSink):
    """Writes alerts to the notification outbox table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def enqueue(self, event: AlertEvent) -> Optional[int]:
        notification = AlertNotification(
            tenant_id=event.tenant_id,
            event_type=event.event_type,
            title=event.title,
            message=event.message,
            priority=event.priority,
            survey_id=event.survey_id,
            response_id=event.response_id,
            payload=event.payload,
            status="queued",
        )
        try:
            self.db.add(notification)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to enqueue {event.event_type} for response {event.response_id}: {e}")
            raise PersistenceFailed("enqueue_alert", e)

        logger.info(
            f"Alert queued: id={notification.id} tenant={event.tenant_id} "
            f"response={event.response_id} priority={event.priority}"
        )
        return notification.id


class MockNotificationSink(NotificationSink):
    """In-memory sink for testing and development."""

    def __init__(self, fail: bool = False):
        self.events: list[AlertEvent] = []
        self.fail = fail

    async def enqueue(self, event: AlertEvent) -> Optional[int]:
        if self.fail:
            raise PersistenceFailed("enqueue_alert", RuntimeError("mock sink failure"))
        self.events.append(event)
        logger.info(f"Mock alert queued for response {event.response_id}: {event.title}")
        return len(self.events)
