"""
Tests for the feedback pipeline (analyze and act).

Runs the full flow against SQLite with a mock insight provider and an
in-memory notification sink.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ConflictError, InputInvalid, InsightRateLimited, InsightTimeout, NotFoundError
from app.models.feedback import Action, Survey, SurveyResponse
from app.services.feedback.pipeline import FeedbackPipeline, analyze_and_act
from app.services.feedback.stores import ResponseStore
from app.services.insight_provider import MockInsightProvider
from app.services.notification_sink import MockNotificationSink
from tests.conftest import OTHER_TENANT_ID, TENANT_ID
from tests.factories import NegativeInsightFactory

COMPLAINT = {"sentiment": "negative", "urgency": "high", "classification": {"isComplaint": True}}


async def action_count(db) -> int:
    return await db.scalar(select(func.count(Action.id)))


async def stored(db, response_id) -> SurveyResponse:
    result = await db.execute(
        select(SurveyResponse)
        .where(SurveyResponse.id == response_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest.fixture
def sink() -> MockNotificationSink:
    return MockNotificationSink()


class TestAnalyzeAndAct:

    @pytest.mark.asyncio
    async def test_complaint_end_to_end(self, test_db, sink, sample_survey, make_response):
        row = await make_response(rating=1, score=3, review="This is awful, refund me")
        provider = MockInsightProvider(COMPLAINT)

        results = await analyze_and_act(
            test_db, row.id, sample_survey.id, TENANT_ID, provider, notifications=sink
        )

        assert [r["intent"] for r in results] == [
            "STORE_METADATA", "CREATE_ACTION", "SEND_ALERT", "ESCALATE", "DASHBOARD_FLAG",
        ]
        assert all(r["status"] != "failed" for r in results)
        assert await action_count(test_db) == 1
        assert len(sink.events) == 1

        saved = await stored(test_db, row.id)
        assert saved.analysis["sentiment"] == "negative"
        assert saved.analysis["nps_category"] == "detractor"
        assert saved.analysis["rating_category"] == "very_poor"
        assert saved.analysis["flagged_for_review"] is True
        assert saved.pipeline_results == results

    @pytest.mark.asyncio
    async def test_second_run_returns_recorded_results(self, test_db, sink, sample_survey, make_response):
        row = await make_response(rating=1, score=3, review="This is awful, refund me")
        provider = MockInsightProvider(COMPLAINT)
        pipeline = FeedbackPipeline(test_db, provider, notifications=sink, repeat_mode="skip")

        first = await pipeline.analyze_and_act(row.id, sample_survey.id, TENANT_ID)
        analyzed_at = (await stored(test_db, row.id)).analysis["analyzed_at"]
        second = await pipeline.analyze_and_act(row.id, sample_survey.id, TENANT_ID)

        assert second == first
        assert await action_count(test_db) == 1
        assert len(provider.calls) == 1
        assert len(sink.events) == 1
        assert (await stored(test_db, row.id)).analysis["analyzed_at"] == analyzed_at

    @pytest.mark.asyncio
    async def test_repeat_in_dry_run_mode_plans_only(self, test_db, sink, sample_survey, make_response):
        row = await make_response(rating=1, score=3, review="This is awful, refund me")
        provider = MockInsightProvider(COMPLAINT)

        await FeedbackPipeline(test_db, provider, notifications=sink).analyze_and_act(
            row.id, sample_survey.id, TENANT_ID
        )
        results = await FeedbackPipeline(
            test_db, provider, notifications=sink, repeat_mode="dry_run"
        ).analyze_and_act(row.id, sample_survey.id, TENANT_ID)

        assert [r["status"] for r in results] == ["planned"] * 5
        assert results[1]["intent"] == "CREATE_ACTION"
        assert await action_count(test_db) == 1
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_dry_run_plans_from_stated_classification(self, test_db, sink, sample_survey, make_response):
        row = await make_response(rating=4, review="It was fine I guess")
        provider = MockInsightProvider({"sentiment": "negative", "urgency": "normal"})

        first = await FeedbackPipeline(test_db, provider, notifications=sink).analyze_and_act(
            row.id, sample_survey.id, TENANT_ID
        )
        planned = await FeedbackPipeline(
            test_db, provider, notifications=sink, repeat_mode="dry_run"
        ).analyze_and_act(row.id, sample_survey.id, TENANT_ID)

        assert (await stored(test_db, row.id)).analysis["classification"]["is_complaint"] is True
        assert [r["intent"] for r in planned] == [r["intent"] for r in first]
        assert all(r["status"] == "planned" for r in planned)

    @pytest.mark.asyncio
    async def test_praise_creates_no_action(self, test_db, sink, sample_survey, make_response):
        row = await make_response(score=10, review="amazing team!")
        provider = MockInsightProvider({"sentiment": "positive", "classification": {"isPraise": True}})

        results = await analyze_and_act(test_db, row.id, sample_survey.id, TENANT_ID, provider, notifications=sink)

        assert results == [
            {"intent": "STORE_METADATA", "status": "done"},
            {"intent": "TRACK_PRAISE", "status": "tracked"},
        ]
        assert await action_count(test_db) == 0

    @pytest.mark.asyncio
    async def test_callback_request(self, test_db, sink, sample_survey, make_response):
        row = await make_response(rating=5, review="please call me back tomorrow")
        provider = MockInsightProvider({"sentiment": "neutral", "urgency": "normal"})

        results = await analyze_and_act(test_db, row.id, sample_survey.id, TENANT_ID, provider, notifications=sink)

        assert [r["intent"] for r in results] == ["STORE_METADATA", "CREATE_CALLBACK", "SEND_ALERT"]
        action = await test_db.get(Action, results[1]["id"])
        assert action.priority == "high"
        assert action.category == "Callback"


class TestInsightFailures:

    @pytest.mark.asyncio
    async def test_timeout_persists_nothing(self, test_db, sink, sample_survey, make_response):
        row = await make_response(rating=1, review="terrible")
        provider = MockInsightProvider(NegativeInsightFactory(), delay=1.0)
        pipeline = FeedbackPipeline(test_db, provider, notifications=sink, insight_timeout=0.05)

        with pytest.raises(InsightTimeout) as exc_info:
            await pipeline.analyze_and_act(row.id, sample_survey.id, TENANT_ID)

        assert exc_info.value.status_code == 504
        saved = await stored(test_db, row.id)
        assert saved.analysis is None
        assert saved.pipeline_results is None
        assert saved.pipeline_claimed_at is None
        assert await action_count(test_db) == 0
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_provider_error_propagates(self, test_db, sink, sample_survey, make_response):
        row = await make_response(rating=1, review="terrible")
        provider = MockInsightProvider(error=InsightRateLimited(retry_after=30))

        with pytest.raises(InsightRateLimited):
            await analyze_and_act(test_db, row.id, sample_survey.id, TENANT_ID, provider, notifications=sink)

        assert (await stored(test_db, row.id)).analysis is None
        assert await action_count(test_db) == 0

    @pytest.mark.asyncio
    async def test_failed_run_can_be_retried(self, test_db, sink, sample_survey, make_response):
        row = await make_response(score=2)
        provider = MockInsightProvider(error=InsightRateLimited())

        with pytest.raises(InsightRateLimited):
            await analyze_and_act(test_db, row.id, sample_survey.id, TENANT_ID, provider, notifications=sink)

        provider.error = None
        results = await analyze_and_act(test_db, row.id, sample_survey.id, TENANT_ID, provider, notifications=sink)

        assert [r["intent"] for r in results] == ["STORE_METADATA", "CREATE_ACTION"]


class TestLoading:

    @pytest.mark.asyncio
    async def test_unknown_response(self, test_db, sample_survey):
        with pytest.raises(NotFoundError):
            await analyze_and_act(test_db, 9999, sample_survey.id, TENANT_ID, MockInsightProvider())

    @pytest.mark.asyncio
    async def test_response_of_other_tenant(self, test_db, sample_survey, make_response):
        row = await make_response(score=2)

        with pytest.raises(NotFoundError):
            await analyze_and_act(test_db, row.id, sample_survey.id, OTHER_TENANT_ID, MockInsightProvider())

    @pytest.mark.asyncio
    async def test_response_of_other_survey(self, test_db, sample_survey, make_response):
        row = await make_response(score=2)
        other = Survey(tenant_id=TENANT_ID, title="Other", status="active")
        test_db.add(other)
        await test_db.commit()

        provider = MockInsightProvider()
        with pytest.raises(InputInvalid):
            await analyze_and_act(test_db, row.id, other.id, TENANT_ID, provider)

        assert provider.calls == []


class TestClaim:

    @pytest.mark.asyncio
    async def test_claim_is_exclusive_until_released(self, test_db, make_response):
        row = await make_response(score=2)
        responses = ResponseStore(test_db)

        assert await responses.claim(row.id, stale_after=300) is True
        assert await responses.claim(row.id, stale_after=300) is False

        await responses.release(row.id)
        assert await responses.claim(row.id, stale_after=300) is True

    @pytest.mark.asyncio
    async def test_claimed_response_is_conflict(self, test_db, sink, sample_survey, make_response):
        row = await make_response(rating=1, review="terrible")
        await ResponseStore(test_db).claim(row.id, stale_after=300)
        provider = MockInsightProvider(COMPLAINT)

        with pytest.raises(ConflictError) as exc_info:
            await analyze_and_act(test_db, row.id, sample_survey.id, TENANT_ID, provider, notifications=sink)

        assert exc_info.value.status_code == 409
        assert provider.calls == []
        assert await action_count(test_db) == 0

    @pytest.mark.asyncio
    async def test_stale_claim_is_taken_over(self, test_db, sink, sample_survey, make_response):
        row = await make_response(rating=1, review="terrible")
        await test_db.execute(
            update(SurveyResponse)
            .where(SurveyResponse.id == row.id)
            .values(pipeline_claimed_at=datetime.now(timezone.utc) - timedelta(hours=1))
        )
        await test_db.commit()

        results = await FeedbackPipeline(
            test_db, MockInsightProvider(COMPLAINT), notifications=sink, claim_ttl=300
        ).analyze_and_act(row.id, sample_survey.id, TENANT_ID)

        assert results[1]["intent"] == "CREATE_ACTION"
        assert await action_count(test_db) == 1

    @pytest.mark.asyncio
    async def test_overlapping_run_creates_no_second_action(self, test_db, sink, sample_survey, make_response):
        row = await make_response(rating=1, review="terrible")
        rejected = []

        class OverlappingProvider(MockInsightProvider):
            """Starts a second run for the same response while this one waits on insight."""

            async def analyze(self, response):
                async with AsyncSession(test_db.bind, expire_on_commit=False) as other:
                    second = FeedbackPipeline(other, MockInsightProvider(COMPLAINT), notifications=sink)
                    try:
                        await second.analyze_and_act(row.id, sample_survey.id, TENANT_ID)
                    except ConflictError as e:
                        rejected.append(e)
                return await super().analyze(response)

        results = await FeedbackPipeline(
            test_db, OverlappingProvider(COMPLAINT), notifications=sink
        ).analyze_and_act(row.id, sample_survey.id, TENANT_ID)

        assert len(rejected) == 1
        assert results[1]["intent"] == "CREATE_ACTION"
        assert await action_count(test_db) == 1
        assert len(sink.events) == 1
