import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.database import Base, get_db
from app.models.feedback import Survey, SurveyQuestion, SurveyResponse
from app.services.insight_provider import MockInsightProvider, get_insight_provider

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

TENANT_ID = "tenant-test"
OTHER_TENANT_ID = "tenant-other"


@pytest_asyncio.fixture
async def test_db():
    """Create test database and tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def tenant_id() -> str:
    return TENANT_ID


@pytest.fixture
def mock_insight() -> MockInsightProvider:
    """Neutral insight unless a test swaps ``.insight`` / ``.error``."""
    return MockInsightProvider()


@pytest_asyncio.fixture
async def client(test_db: AsyncSession, mock_insight: MockInsightProvider):
    """Create test client with overridden database and insight provider."""

    async def override_get_db():
        yield test_db

    async def override_get_insight_provider():
        return mock_insight

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_insight_provider] = override_get_insight_provider

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-Tenant-ID": TENANT_ID},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def sample_survey(test_db: AsyncSession) -> Survey:
    """Active two-question survey: rating then free-text comment."""
    survey = Survey(
        tenant_id=TENANT_ID,
        title="Post-visit Survey",
        status="active",
        target_audience={"audience_type": "all"},
    )
    survey.questions = [
        SurveyQuestion(
            question_id="q1",
            position=0,
            question_type="rating",
            question_text="How would you rate your visit?",
            default_next_question_id="q2",
        ),
        SurveyQuestion(
            question_id="q2",
            position=1,
            question_type="text",
            question_text="Anything else you would like to tell us?",
        ),
    ]
    test_db.add(survey)
    await test_db.commit()
    await test_db.refresh(survey)
    return survey


@pytest_asyncio.fixture
async def make_response(test_db: AsyncSession, sample_survey: Survey):
    """Factory fixture persisting a SurveyResponse for ``sample_survey``."""

    async def _make(**fields) -> SurveyResponse:
        fields.setdefault("tenant_id", TENANT_ID)
        fields.setdefault("survey_id", sample_survey.id)
        response = SurveyResponse(**fields)
        test_db.add(response)
        await test_db.commit()
        await test_db.refresh(response)
        return response

    return _make
