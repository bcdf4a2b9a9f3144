from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict

from app.models.job import JobStatusEnum


class RenderJobBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: JobStatusEnum
    message: Optional[str] = None
    progress: float = 0.0


class RenderJobCreateResponse(RenderJobBase):
    raster_hash: Optional[str] = None


class RenderJobStatusResponse(RenderJobBase):
    result_url: Optional[str] = None


class RenderJobDetail(RenderJobBase):
    caption: Dict[str, Any]
    frame_w: int
    frame_h: int
    raster_hash: Optional[str] = None
    input_path: str
    output_path: Optional[str] = None
    created_at: datetime
    updated_at: datetime
