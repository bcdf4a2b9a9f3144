import os
from functools import lru_cache
from dotenv import load_dotenv

load_dotenv()  # loads .env if present


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    PROJECT_NAME: str = "Caption Studio Backend"
    API_PREFIX: str = "/api"

    BACKEND_CORS_ORIGINS: list[str] = [
        o.strip() for o in os.getenv("BACKEND_CORS_ORIGINS", "*").split(",") if o.strip()
    ]

    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql+psycopg2://postgres:postgres@db:5432/caption_studio",
    )

    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "/app/data/uploads")
    OUTPUT_DIR: str = os.getenv("OUTPUT_DIR", "/app/data/outputs")

    # Decoded caption rasters handed to ffmpeg
    CAPTION_DIR: str = os.getenv("CAPTION_DIR", "/app/data/captions")

    # Directory searched first for caption fonts (DejaVuSans*.ttf)
    FONT_DIR: str = os.getenv("FONT_DIR", "/app/assets/fonts")

    # Target frame for the vertical video product
    FRAME_W: int = int(os.getenv("FRAME_W", "1080"))
    FRAME_H: int = int(os.getenv("FRAME_H", "1920"))

    # Max parallel ffmpeg jobs
    MAX_WORKERS: int = int(os.getenv("MAX_WORKERS", "2"))

    # Bearer token is optional unless this is set
    REQUIRE_AUTH: bool = _env_bool("REQUIRE_AUTH")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


@lru_cache
def get_settings():
    return Settings()
