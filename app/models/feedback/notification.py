"""Outbox rows for pipeline side effects that leave the request.

AlertNotification is what SEND_ALERT enqueues; delivery (email, Slack,
push) belongs to whatever drains the outbox. PraiseRecognition is the
recognition log TRACK_PRAISE appends to.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Text, JSON

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertNotification(Base):
    """Queued alert for tenant admins."""

    __tablename__ = "fb_alert_notifications"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)

    event_type = Column(String(50), nullable=False, index=True)  # feedback_alert
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(20), default="high")

    survey_id = Column(Integer, index=True)
    response_id = Column(Integer, index=True)
    payload = Column(JSON)

    status = Column(String(20), default="queued", index=True)  # queued, sent, failed
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    def __repr__(self):
        return f"<AlertNotification {self.event_type}: {self.title[:30]}>"


class PraiseRecognition(Base):
    """Positive feedback recorded for recognition reporting."""

    __tablename__ = "fb_praise_recognitions"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)

    survey_id = Column(Integer, index=True)
    response_id = Column(Integer, index=True)
    sentiment = Column(String(20))
    summary = Column(Text)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
