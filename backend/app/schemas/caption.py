from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CaptionStyle(BaseModel):
    """Whitelisted caption style. Unknown keys are dropped."""
    model_config = ConfigDict(extra="ignore")

    fontFamily: Optional[str] = None
    fontPx: Optional[float] = Field(default=None, ge=8, le=400)
    weightCss: Optional[str | int] = None
    fontStyle: Optional[Literal["normal", "italic", "oblique"]] = None
    letterSpacingPx: Optional[float] = None
    lineSpacingPx: Optional[float] = Field(default=None, ge=0, le=400)
    color: Optional[str] = None
    opacity: Optional[float] = Field(default=None, ge=0, le=1)
    strokePx: Optional[float] = Field(default=None, ge=0)
    strokeColor: Optional[str] = None
    shadowBlur: Optional[float] = Field(default=None, ge=0)
    shadowOffsetX: Optional[float] = None
    shadowOffsetY: Optional[float] = None
    shadowColor: Optional[str] = None
    placement: Optional[Literal["top", "center", "middle", "bottom", "custom"]] = None
    yPct: Optional[float] = Field(default=None, ge=0, le=1)
    xPct: Optional[float] = Field(default=None, ge=0, le=1)
    wPct: Optional[float] = Field(default=None, ge=0, le=1)
    internalPaddingPx: Optional[float] = Field(default=None, ge=0, le=200)
    internalPadding: Optional[float] = Field(default=None, ge=0, le=200)


class CaptionPreviewRequest(BaseModel):
    """
    Body of POST /api/caption/preview.

    Client-measured requests carry rasterW/rasterH/yPx_png/totalTextH/lines;
    server-measured ones set measure="server" and send text + placement.
    Top-level style fields are accepted alongside `style`.
    """
    model_config = ConfigDict(extra="allow")

    ssotVersion: Optional[int] = None
    mode: Optional[str] = None
    measure: Optional[Literal["server", "client"]] = None
    text: Optional[str] = None
    placement: Optional[str] = None
    style: Optional[Dict[str, Any]] = None

    frameW: int = Field(default=1080, gt=0, le=4096)
    frameH: int = Field(default=1920, gt=0, le=4096)

    xPct: Optional[float] = Field(default=None, ge=0, le=1)
    yPct: Optional[float] = Field(default=None, ge=0, le=1)
    wPct: Optional[float] = Field(default=None, ge=0, le=1)
    textAlign: Optional[str] = None

    rasterW: Optional[float] = None
    rasterH: Optional[float] = None
    rasterPadding: Optional[float] = None
    rasterPaddingX: Optional[float] = Field(default=None, ge=0)
    rasterPaddingY: Optional[float] = Field(default=None, ge=0)
    xPx_png: Optional[float] = None
    yPx_png: Optional[float] = None
    totalTextH: Optional[float] = None
    lines: Optional[List[str]] = None


class RasterMeta(BaseModel):
    rasterUrl: str
    rasterW: int
    rasterH: int
    xPx_png: int
    yPx_png: int
    rasterPadding: float
    rasterPaddingX: Optional[float] = None
    rasterPaddingY: Optional[float] = None
    textAlign: Literal["left", "center", "right"] = "center"
    xExpr_png: Optional[str] = None
    lines: List[str]
    totalTextH: int
    rasterHash: str
    frameW: int
    frameH: int
    fontPx: int
    lineSpacingPx: float
    yPxFirstLine: int


class PreviewData(BaseModel):
    meta: RasterMeta


class PreviewResponse(BaseModel):
    ok: Literal[True] = True
    data: PreviewData


class ParityRequest(BaseModel):
    expectedUrl: str
    actualUrl: str
    ssimThreshold: float = Field(default=0.995, ge=0, le=1)
    maxPixelDiff: float = Field(default=0.01, ge=0, le=1)
    expectedHash: Optional[str] = Field(default=None, min_length=16, max_length=16)


class ParityReport(BaseModel):
    ssim: float
    pixelDiff: float
    passed: bool
    width: int
    height: int
    hashMatch: Optional[bool] = None


class ParityResponse(BaseModel):
    ok: Literal[True] = True
    data: ParityReport


class CaptionPresetCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    style: Dict[str, Any]


class CaptionPresetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    style: Dict[str, Any]
    created_at: datetime


class CaptionPresetResponse(BaseModel):
    ok: Literal[True] = True
    data: CaptionPresetOut


class CaptionPresetListResponse(BaseModel):
    ok: Literal[True] = True
    data: List[CaptionPresetOut]
