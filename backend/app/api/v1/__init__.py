from fastapi import APIRouter
from app.api.v1.routes_caption import router as caption_router
from app.api.v1.routes_jobs import router as jobs_router
from app.api.v1.routes_presets import router as presets_router

api_router = APIRouter()
api_router.include_router(caption_router, prefix="", tags=["caption"])
api_router.include_router(presets_router, prefix="", tags=["caption-presets"])
api_router.include_router(jobs_router, prefix="", tags=["caption-render"])
