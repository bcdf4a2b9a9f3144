import os
import tempfile

# Settings are read at import time, so the environment must be in place
# before anything under `app` is imported.
_TMP_DIR = tempfile.mkdtemp(prefix="caption-studio-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ["OUTPUT_DIR"] = os.path.join(_TMP_DIR, "outputs")
os.environ["CAPTION_DIR"] = os.path.join(_TMP_DIR, "captions")
os.environ["FONT_DIR"] = os.path.join(_TMP_DIR, "fonts")
os.environ["REQUIRE_AUTH"] = "false"
os.environ["LOG_LEVEL"] = "DEBUG"

import pytest
from fastapi.testclient import TestClient
from PIL import Image, ImageDraw

from app.core.config import get_settings
from app.core.db import session_scope
from app.main import app


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    with session_scope() as session:
        yield session


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def require_auth(monkeypatch, settings):
    monkeypatch.setattr(settings, "REQUIRE_AUTH", True)


@pytest.fixture
def no_workers(monkeypatch):
    """Record submitted render jobs instead of running ffmpeg."""
    submitted = []
    monkeypatch.setattr(
        "app.services.jobs.executor.submit",
        lambda fn, *args, **kwargs: submitted.append(args),
    )
    return submitted


@pytest.fixture
def caption_image():
    image = Image.new("RGBA", (120, 60), (0, 0, 0, 0))
    draw = ImageDraw.Draw(image)
    draw.rectangle((10, 10, 110, 40), fill=(255, 255, 255, 255))
    draw.ellipse((30, 15, 60, 35), fill=(200, 30, 30, 255))
    return image
