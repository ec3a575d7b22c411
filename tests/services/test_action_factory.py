"""
Tests for ActionFactory payload normalization.
"""

import pytest

from app.exceptions import ActionPayloadInvalid
from app.schemas.feedback import Priority
from app.services.feedback.action_factory import ActionFactory


@pytest.fixture
def factory() -> ActionFactory:
    return ActionFactory("tenant-a")


def test_context_fields_are_set(factory):
    row = factory.build({"title": "Fix it", "description": "Broken", "priority": "high"})

    assert row["tenant_id"] == "tenant-a"
    assert row["status"] == "pending"
    assert row["source"] == "ai_generated"
    assert row["category"] == "general"
    assert row["tags"] == []


def test_payload_cannot_override_tenant_or_status(factory):
    row = factory.build(
        {
            "description": "Broken",
            "priority": "low",
            "tenant_id": "tenant-b",
            "status": "resolved",
            "source": "manual",
            "id": 99,
        }
    )

    assert row["tenant_id"] == "tenant-a"
    assert row["status"] == "pending"
    assert row["source"] == "ai_generated"
    assert "id" not in row


def test_title_derived_from_first_description_line(factory):
    row = factory.build({"description": "Card declined at checkout\nSecond line", "priority": "medium"})

    assert row["title"] == "Card declined at checkout"


def test_derived_title_is_capped(factory):
    row = factory.build({"description": "x" * 300, "priority": "medium"})

    assert len(row["title"]) == 80


def test_lengths_are_truncated(factory):
    row = factory.build(
        {
            "title": "t" * 250,
            "description": "d" * 2500,
            "problem_statement": "p" * 2500,
            "priority": "high",
        }
    )

    assert len(row["title"]) == 200
    assert len(row["description"]) == 2000
    assert len(row["problem_statement"]) == 2000


def test_priority_enum_is_accepted(factory):
    row = factory.build({"description": "Broken", "priority": Priority.MEDIUM})

    assert row["priority"] == "medium"


@pytest.mark.parametrize("priority", [None, "urgent", "HIGH", 1])
def test_invalid_priority_is_rejected(factory, priority):
    with pytest.raises(ActionPayloadInvalid):
        factory.build({"description": "Broken", "priority": priority})


@pytest.mark.parametrize("description", [None, "", "   "])
def test_description_is_required(factory, description):
    with pytest.raises(ActionPayloadInvalid) as exc_info:
        factory.build({"title": "Fix it", "description": description, "priority": "low"})

    assert exc_info.value.status_code == 422


def test_tenant_is_required():
    with pytest.raises(ActionPayloadInvalid):
        ActionFactory("")


def test_metadata_and_evidence_pass_through(factory):
    payload = {
        "description": "Broken",
        "priority": "low",
        "metadata": {"survey_id": 1, "response_id": 2},
        "evidence": {"response_count": 1},
        "tags": ("auto", "survey"),
    }

    row = factory.build(payload)

    assert row["metadata"] == {"survey_id": 1, "response_id": 2}
    assert row["evidence"] == {"response_count": 1}
    assert row["tags"] == ["auto", "survey"]
