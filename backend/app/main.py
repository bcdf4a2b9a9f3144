from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import get_settings
from app.core.db import Base, engine
from app.core.errors import register_exception_handlers
from app.core.logging import get_logger, setup_logging
from app.api.v1 import api_router as api_v1_router

# registers caption_presets / caption_render_jobs on Base.metadata
from app.models import caption_preset, job  # noqa: F401

settings = get_settings()
logger = get_logger(__name__)


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL)
    Base.metadata.create_all(bind=engine)

    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Caption overlay preview, parity checks and burn-in renders",
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(application)
    application.include_router(api_v1_router, prefix=settings.API_PREFIX)

    @application.get("/health")
    def health():
        return {
            "status": "ok",
            "frame": {"W": settings.FRAME_W, "H": settings.FRAME_H},
        }

    logger.info(
        "%s ready: frame %sx%s, auth %s",
        settings.PROJECT_NAME,
        settings.FRAME_W,
        settings.FRAME_H,
        "required" if settings.REQUIRE_AUTH else "optional",
    )
    return application


app = create_app()
