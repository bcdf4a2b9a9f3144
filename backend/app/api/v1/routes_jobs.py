import json
import os
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, UploadFile, File, Form, HTTPException
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.core.auth import optional_bearer_token
from app.core.config import get_settings
from app.core.db import get_db
from app.models.job import RenderJob
from app.schemas.caption import RasterMeta
from app.schemas.job import RenderJobCreateResponse, RenderJobDetail, RenderJobStatusResponse
from app.services.jobs import create_job

router = APIRouter()
settings = get_settings()


def _get_job_or_404(db: Session, job_id: str) -> RenderJob:
    job: RenderJob | None = (
        db.query(RenderJob).filter(RenderJob.id == job_id).first()
    )
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post("/caption/render", response_model=RenderJobCreateResponse)
async def upload_render_job(
    file: UploadFile = File(...),
    caption: str = Form(...),
    db: Session = Depends(get_db),
    _token: Optional[str] = Depends(optional_bearer_token),
):
    """
    Burn a previewed caption into a video.
    - `file`: video file
    - `caption`: JSON RasterMeta returned by /caption/preview (with rasterUrl)
    """
    try:
        caption_raw: Dict[str, Any] = json.loads(caption)
        RasterMeta.model_validate(caption_raw)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid caption: {e}")

    if file.content_type is None or not file.content_type.startswith("video/"):
        raise HTTPException(status_code=400, detail="Uploaded file must be a video")

    job = create_job(db, file, caption_raw)

    return RenderJobCreateResponse.model_validate(job)


@router.get("/caption/render/{job_id}", response_model=RenderJobStatusResponse)
def get_render_status(job_id: str, db: Session = Depends(get_db)):
    job = _get_job_or_404(db, job_id)

    result_url = None
    if job.status.value == "done" and job.output_path:
        result_url = f"{settings.API_PREFIX}/caption/render/{job_id}/result"

    return RenderJobStatusResponse(
        id=job.id,
        status=job.status.value,
        message=job.message,
        progress=job.progress or 0.0,
        result_url=result_url,
    )


@router.get("/caption/render/{job_id}/detail", response_model=RenderJobDetail)
def get_render_detail(job_id: str, db: Session = Depends(get_db)):
    job = _get_job_or_404(db, job_id)

    return RenderJobDetail.model_validate(job)


@router.get("/caption/render/{job_id}/result")
def download_render_result(job_id: str, db: Session = Depends(get_db)):
    job = _get_job_or_404(db, job_id)

    if job.status.value != "done" or not job.output_path:
        raise HTTPException(status_code=400, detail="Result not ready")

    output_dir = os.path.abspath(settings.OUTPUT_DIR)
    if not os.path.abspath(job.output_path).startswith(output_dir + os.sep):
        raise HTTPException(status_code=500, detail="Invalid output path")

    if not os.path.exists(job.output_path):
        raise HTTPException(status_code=404, detail="Output file not found")

    return FileResponse(
        path=job.output_path,
        media_type="video/mp4",
        filename=f"{job.id}_output.mp4",
    )
