from fastapi import APIRouter

from .health import router as health_router
from .metadata import router as metadata_router
from .pipelines import router as pipelines_router
from .usage import router as usage_router


api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(pipelines_router)
api_router.include_router(metadata_router)
api_router.include_router(usage_router)
