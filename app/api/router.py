from fastapi import APIRouter

from app.api.analyze import router as analyze_router
from app.api.download import router as download_router
from app.api.feedback import router as feedback_router
from app.api.providers import router as providers_router

api_router = APIRouter(prefix="/api")
api_router.include_router(analyze_router)
api_router.include_router(download_router)
api_router.include_router(feedback_router)
api_router.include_router(providers_router)
