"""
Contact and Segment Models for audience selection.

Segments store a rule tree (``{"logic": "AND", "conditions": [...]}``) that
the segment query compiler turns into a membership predicate over contacts.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, Text, JSON, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Contact(Base):
    """Survey recipient within a tenant."""

    __tablename__ = "fb_contacts"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)

    name = Column(String(200))
    email = Column(String(255), index=True)
    phone = Column(String(50))
    company = Column(String(200))
    tags = Column(JSON, default=list)

    status = Column(String(20), default="Active")  # Active, Inactive, Blocked
    segment = Column(String(100))

    # Survey engagement stats
    response_count = Column(Integer, default=0)
    avg_rating = Column(Float)

    last_activity = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f"<Contact id={self.id} email={self.email}>"


class Segment(Base):
    """Saved, tenant-scoped contact predicate."""

    __tablename__ = "fb_segments"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_fb_segment_tenant_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    description = Column(Text)

    # {"logic": "AND", "conditions": [{"field": "avgRating", "operator": "lessThan", "value": 3}]}
    rules = Column(JSON, nullable=False)

    is_system = Column(Boolean, default=False)
    contact_count = Column(Integer, default=0)
    last_evaluated_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Segment id={self.id} name='{self.name}'>"
