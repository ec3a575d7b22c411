"""
Tests for the feedback API endpoints (/api/v2/feedback).
"""

import pytest
from httpx import AsyncClient

from app.exceptions import InsightTimeout

FEEDBACK_PREFIX = "/api/v2/feedback"


class TestAnalyze:

    @pytest.mark.asyncio
    async def test_analyze_complaint(self, client: AsyncClient, mock_insight, sample_survey, make_response):
        row = await make_response(rating=1, score=3, review="This is awful, refund me")
        mock_insight.insight = {"sentiment": "negative", "urgency": "high", "classification": {"isComplaint": True}}

        response = await client.post(
            f"{FEEDBACK_PREFIX}/analyze",
            json={"response_id": row.id, "survey_id": sample_survey.id},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["response_id"] == row.id
        assert [r["intent"] for r in data["results"]] == [
            "STORE_METADATA", "CREATE_ACTION", "SEND_ALERT", "ESCALATE", "DASHBOARD_FLAG",
        ]
        assert data["results"][2]["status"] == "queued"

        actions = await client.get(f"{FEEDBACK_PREFIX}/actions", params={"response_id": row.id})
        assert actions.status_code == 200
        body = actions.json()
        assert body["total"] == 1
        assert body["items"][0]["priority"] == "high"
        assert body["items"][0]["metadata"]["response_id"] == row.id

    @pytest.mark.asyncio
    async def test_analyze_twice_creates_no_new_actions(self, client: AsyncClient, mock_insight, sample_survey, make_response):
        row = await make_response(score=4)
        payload = {"response_id": row.id, "survey_id": sample_survey.id}

        first = await client.post(f"{FEEDBACK_PREFIX}/analyze", json=payload)
        second = await client.post(f"{FEEDBACK_PREFIX}/analyze", json=payload)

        assert first.json()["results"] == second.json()["results"]
        actions = await client.get(f"{FEEDBACK_PREFIX}/actions")
        assert actions.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_insight_timeout_is_504_problem(self, client: AsyncClient, mock_insight, sample_survey, make_response):
        row = await make_response(rating=1, review="terrible")
        mock_insight.error = InsightTimeout(30)

        response = await client.post(
            f"{FEEDBACK_PREFIX}/analyze",
            json={"response_id": row.id, "survey_id": sample_survey.id},
        )

        assert response.status_code == 504
        assert response.headers["content-type"].startswith("application/problem+json")
        assert response.json()["code"] == "SRV_003"

    @pytest.mark.asyncio
    async def test_unknown_response_is_404(self, client: AsyncClient, sample_survey):
        response = await client.post(
            f"{FEEDBACK_PREFIX}/analyze",
            json={"response_id": 424242, "survey_id": sample_survey.id},
        )

        assert response.status_code == 404
        assert response.json()["code"] == "RES_001"

    @pytest.mark.asyncio
    async def test_tenant_header_is_required(self, client: AsyncClient, sample_survey, make_response):
        row = await make_response(score=2)

        response = await client.post(
            f"{FEEDBACK_PREFIX}/analyze",
            json={"response_id": row.id, "survey_id": sample_survey.id},
            headers={"X-Tenant-ID": ""},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_analyze(self, client: AsyncClient, sample_survey, make_response):
        row = await make_response(score=2)

        response = await client.post(
            f"{FEEDBACK_PREFIX}/analyze",
            json={"response_id": row.id, "survey_id": sample_survey.id},
            headers={"X-Tenant-ID": "someone-else"},
        )

        assert response.status_code == 404


class TestPlan:

    @pytest.mark.asyncio
    async def test_plan_is_side_effect_free(self, client: AsyncClient):
        response = await client.post(
            f"{FEEDBACK_PREFIX}/plan",
            json={
                "insight": {"sentiment": "neutral", "urgency": "normal"},
                "response": {"rating": 5, "review": "please call me back tomorrow"},
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["intents"] == ["CREATE_CALLBACK", "SEND_ALERT"]
        assert data["reasons"] == ["contact_requested"]

        actions = await client.get(f"{FEEDBACK_PREFIX}/actions")
        assert actions.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_plan_requires_sentiment(self, client: AsyncClient):
        response = await client.post(f"{FEEDBACK_PREFIX}/plan", json={"insight": {"urgency": "high"}})

        assert response.status_code == 422
        assert response.json()["code"] == "VAL_001"


class TestActions:

    @pytest.mark.asyncio
    async def test_filters_and_pagination(self, client: AsyncClient, mock_insight, sample_survey, make_response):
        mock_insight.insight = {"sentiment": "neutral"}
        for score in (1, 2, 3):
            row = await make_response(score=score)
            await client.post(
                f"{FEEDBACK_PREFIX}/analyze",
                json={"response_id": row.id, "survey_id": sample_survey.id},
            )

        page = await client.get(f"{FEEDBACK_PREFIX}/actions", params={"page_size": 2, "priority": "medium"})

        assert page.status_code == 200
        body = page.json()
        assert body["total"] == 3
        assert len(body["items"]) == 2

        none = await client.get(f"{FEEDBACK_PREFIX}/actions", params={"status": "resolved"})
        assert none.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_get_missing_action(self, client: AsyncClient):
        response = await client.get(f"{FEEDBACK_PREFIX}/actions/999")

        assert response.status_code == 404
