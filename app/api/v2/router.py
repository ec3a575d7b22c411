from fastapi import APIRouter
from app.api.v2 import (
    feedback,
    surveys,
    segments,
)

api_router = APIRouter()

# Include all v2 routers
api_router.include_router(feedback.router, prefix="/feedback", tags=["feedback"])
api_router.include_router(surveys.router, prefix="/surveys", tags=["surveys"])
api_router.include_router(segments.router, prefix="/segments", tags=["segments"])
