from concurrent.futures import ThreadPoolExecutor
from sqlalchemy.orm import Session
from typing import Any, Dict
import os
import uuid

from fastapi import UploadFile

from app.core.config import get_settings
from app.core.db import session_scope
from app.core.errors import CaptionPreviewError
from app.core.logging import get_logger
from app.models.job import RenderJob, JobStatusEnum
from app.services.caption_geometry import get_frame_dims
from app.services.caption_raster import decode_data_url, raster_hash
from app.services.video_renderer import (
    CaptionRenderError,
    check_geometry_lock,
    configured_frame,
    render_job,
)

settings = get_settings()
logger = get_logger(__name__)

# Global executor for parallel processing
executor = ThreadPoolExecutor(max_workers=settings.MAX_WORKERS)


def store_caption_raster(caption: Dict[str, Any]) -> str:
    """
    Decode caption["rasterUrl"] into CAPTION_DIR after checking it is the
    raster the preview reported (size and hash).
    """
    try:
        image = decode_data_url(caption.get("rasterUrl"))
    except ValueError as e:
        raise CaptionPreviewError(f"Invalid caption raster: {e}")

    if (image.width, image.height) != (int(caption["rasterW"]), int(caption["rasterH"])):
        raise CaptionPreviewError(
            f"Caption raster is {image.width}x{image.height}, meta says "
            f"{int(caption['rasterW'])}x{int(caption['rasterH'])}"
        )
    expected = caption.get("rasterHash")
    if expected and raster_hash(image) != expected:
        raise CaptionPreviewError("Caption raster does not match rasterHash")

    path = os.path.join(settings.CAPTION_DIR, f"{uuid.uuid4()}.png")
    image.save(path, format="PNG")
    return path


def create_job(
    db: Session,
    video_file: UploadFile,
    caption: Dict[str, Any],
) -> RenderJob:
    try:
        check_geometry_lock(caption, configured_frame())
    except CaptionRenderError as e:
        raise CaptionPreviewError(str(e))

    raster_path = store_caption_raster(caption)
    locked = get_frame_dims(caption)

    # Save file to disk
    file_ext = os.path.splitext(video_file.filename or "")[1] or ".mp4"
    filename = f"{uuid.uuid4()}{file_ext}"
    file_path = os.path.join(settings.UPLOAD_DIR, filename)

    with open(file_path, "wb") as f:
        f.write(video_file.file.read())

    job = RenderJob(
        input_path=file_path,
        raster_path=raster_path,
        caption={k: v for k, v in caption.items() if k != "rasterUrl"},
        raster_hash=caption.get("rasterHash"),
        frame_w=locked.W,
        frame_h=locked.H,
        status=JobStatusEnum.pending,
        message="Queued",
        progress=0.0,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info("Queued caption render job %s (%s)", job.id, file_path)

    # Enqueue job to thread pool
    executor.submit(_run_job_in_thread, job.id)

    return job


def _run_job_in_thread(job_id: str) -> None:
    with session_scope() as db:
        render_job(db, job_id)
