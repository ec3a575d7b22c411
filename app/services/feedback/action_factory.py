"""
Action Factory

Normalizes caller payloads into rows the action store will accept. Only
allow-listed fields pass through; tenant, status and source are always set
here and never taken from the payload.
"""

import logging
from typing import Any, Mapping

from app.exceptions import ActionPayloadInvalid
from app.schemas.feedback import Priority

logger = logging.getLogger(__name__)


TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000
PROBLEM_STATEMENT_MAX_LENGTH = 2000
DERIVED_TITLE_LENGTH = 80

ALLOWED_FIELDS = frozenset({
    "title",
    "description",
    "priority",
    "category",
    "tags",
    "problem_statement",
    "root_cause",
    "priority_reason",
    "urgency_reason",
    "evidence",
    "metadata",
    "due_date",
})


def _truncate(value: Any, limit: int) -> Any:
    if isinstance(value, str) and len(value) > limit:
        return value[:limit]
    return value


class ActionFactory:
    """
    Builds normalized action rows for one tenant.

    Usage:
        factory = ActionFactory(tenant_id)
        row = factory.build({"title": "...", "description": "...", "priority": "high"})
        db.add(Action(**row))
    """

    def __init__(self, tenant_id: str):
        if not tenant_id:
            raise ActionPayloadInvalid("Tenant is required to create an action")
        self.tenant_id = tenant_id

    def build(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        dropped = sorted(k for k in payload if k not in ALLOWED_FIELDS)
        if dropped:
            logger.debug(f"Action payload: dropping non-allow-listed fields {dropped}")
        data = {k: v for k, v in payload.items() if k in ALLOWED_FIELDS}

        description = data.get("description")
        if not isinstance(description, str) or not description.strip():
            raise ActionPayloadInvalid("Action description is required")
        data["description"] = _truncate(description, DESCRIPTION_MAX_LENGTH)

        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            title = description.strip().splitlines()[0][:DERIVED_TITLE_LENGTH]
        data["title"] = _truncate(title, TITLE_MAX_LENGTH)

        priority = data.get("priority")
        if isinstance(priority, Priority):
            priority = priority.value
        if priority not in {p.value for p in Priority}:
            raise ActionPayloadInvalid(
                f"Action priority must be one of high, medium, low (got {priority!r})"
            )
        data["priority"] = priority

        if data.get("problem_statement") is not None:
            data["problem_statement"] = _truncate(data["problem_statement"], PROBLEM_STATEMENT_MAX_LENGTH)

        data["tags"] = list(data.get("tags") or [])
        data.setdefault("category", "general")

        data["tenant_id"] = self.tenant_id
        data["status"] = "pending"
        data["source"] = "ai_generated"
        return data
