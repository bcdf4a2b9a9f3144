import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON
from app.core.db import Base


class CaptionPreset(Base):
    __tablename__ = "caption_presets"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)

    # whitelisted style fields only (see caption_style.extract_style_only)
    style = Column(JSON, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
