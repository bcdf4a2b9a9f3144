import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Enum, Text, Float, Integer, JSON
from app.core.db import Base
import enum


class JobStatusEnum(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    done = "done"
    error = "error"


class RenderJob(Base):
    """One caption burn-in: an uploaded video plus the raster previewed for it."""
    __tablename__ = "caption_render_jobs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    input_path = Column(String, nullable=False)
    output_path = Column(String, nullable=True)

    status = Column(Enum(JobStatusEnum), nullable=False, default=JobStatusEnum.pending)
    message = Column(Text, nullable=True)

    # RasterMeta from /caption/preview without rasterUrl
    caption = Column(JSON, nullable=False)
    raster_path = Column(String, nullable=False)
    raster_hash = Column(String(16), nullable=True, index=True)

    # frame the caption was laid out for (geometry lock)
    frame_w = Column(Integer, nullable=False)
    frame_h = Column(Integer, nullable=False)

    # 0-100, driven by ffmpeg -progress
    progress = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )
