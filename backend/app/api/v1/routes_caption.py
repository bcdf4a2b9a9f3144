from typing import Optional

from fastapi import APIRouter, Depends, Header

from app.core.auth import optional_bearer_token
from app.core.errors import CaptionPreviewError, ok
from app.schemas.caption import (
    CaptionPreviewRequest,
    ParityRequest,
    ParityResponse,
    PreviewResponse,
)
from app.services.caption_parity import compare_rasters, verify_raster_hash
from app.services.caption_preview import generate_preview
from app.services.caption_raster import decode_data_url

router = APIRouter()


@router.post("/caption/preview", response_model=PreviewResponse)
def caption_preview(
    req: CaptionPreviewRequest,
    x_client: Optional[str] = Header(default=None),
    _token: Optional[str] = Depends(optional_bearer_token),
):
    """
    Rasterize a caption.

    - client-measured (default): lines and raster geometry from the browser
    - server-measured: `measure="server"` or header `x-client: mobile`,
      requires `placement` or `yPct`
    """
    meta = generate_preview(req, client_hint=x_client)
    return ok({"meta": meta})


@router.post("/caption/parity", response_model=ParityResponse)
def caption_parity(
    req: ParityRequest,
    _token: Optional[str] = Depends(optional_bearer_token),
):
    """
    Compare a preview raster with a frame grabbed from the render.
    With `expectedHash`, also report whether `actualUrl` still hashes to it.
    """
    try:
        expected = decode_data_url(req.expectedUrl)
        actual = decode_data_url(req.actualUrl)
    except ValueError as e:
        raise CaptionPreviewError(str(e))

    report = compare_rasters(
        expected,
        actual,
        ssim_threshold=req.ssimThreshold,
        max_pixel_diff=req.maxPixelDiff,
    )
    data = report.as_dict()
    if req.expectedHash:
        # actual raster against the hash the preview reported
        data["hashMatch"] = verify_raster_hash(req.actualUrl, req.expectedHash)
    return ok(data)
