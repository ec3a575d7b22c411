"""
RatePro Feedback API - Main Application

- Conditional API docs (disabled in production by default)
- Correlation-aware logging, RFC 7807 errors, Sentry, Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from app.api.v2.router import api_router
from app.config import settings
from app.core.metrics import get_registry
from app.core.sentry import init_sentry
from app.database import init_db
from app.exceptions import RateProException, create_exception_handlers
from app.middleware.correlation import CorrelationIdMiddleware, CorrelationLogFilter
from app.middleware.metrics import MetricsMiddleware
# Import all models to register them with SQLAlchemy metadata before init_db()
from app.models import (  # noqa: F401
    Action, AlertNotification, Contact, PraiseRecognition,
    Segment, Survey, SurveyQuestion, SurveyResponse,
)

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] [%(tenant_id)s] %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(CorrelationLogFilter())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting RatePro Feedback API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    init_sentry()
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        # Exception text may contain the connection string
        logger.error(f"Database initialization failed: {type(e).__name__}")
        logger.warning("App starting without database - some features may not work")
    yield
    logger.info("Shutting down RatePro Feedback API...")


docs_url = "/docs" if settings.DOCS_ENABLED else None
redoc_url = "/redoc" if settings.DOCS_ENABLED else None

app = FastAPI(
    title="RatePro Feedback API",
    description="Feedback analysis and action orchestration for RatePro surveys",
    version=settings.VERSION,
    docs_url=docs_url,
    redoc_url=redoc_url,
    lifespan=lifespan,
)

allowed_origins = [
    settings.FRONTEND_URL,
    "http://localhost:5173",  # Vite dev server
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(CorrelationIdMiddleware)

handlers = create_exception_handlers()
app.add_exception_handler(RateProException, handlers["ratepro"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

app.include_router(api_router, prefix="/api/v2")


@app.get("/")
async def root():
    """Root endpoint - API info."""
    response = {
        "name": "RatePro Feedback API",
        "version": settings.VERSION,
        "health": "/health",
    }
    if settings.DOCS_ENABLED:
        response["docs"] = "/docs"
    return response


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
    }


@app.get("/metrics", response_class=Response)
async def metrics():
    """Prometheus text exposition of request and pipeline metrics."""
    return Response(
        content=get_registry().format_prometheus(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=5001,
        reload=settings.DEBUG,
    )
