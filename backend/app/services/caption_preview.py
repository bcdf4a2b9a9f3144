"""
Builds RasterMeta for POST /api/caption/preview.

Two request shapes share one raster path:

  * client-measured: the browser already measured lines and raster geometry;
    the server trusts that geometry verbatim and only draws the pixels.
  * server-measured: the caller sends raw text + placement/style and the
    server does the wrapping and measurement itself.
"""

from typing import Any, Dict, Optional

from app.core.errors import CaptionPreviewError
from app.core.logging import get_logger
from app.schemas.caption import CaptionPreviewRequest
from app.services import caption_raster
from app.services.caption_geometry import (
    FrameDimensions,
    clamp,
    clamp_y_px_to_frame,
    compute_raster_h,
    compute_y_px_from_placement,
    is_finite_number,
    js_round,
    x_expr_for_align,
)
from app.services.caption_style import (
    FONT_PX_LIMITS,
    PLACEMENTS,
    STYLE_FIELDS,
    resolve_style,
)

logger = get_logger(__name__)

CLIENT_MEASURED_FIELDS = ("rasterW", "rasterH", "yPx_png", "totalTextH", "lines")

# Top-level keys that may carry style next to `style`
_TOP_LEVEL_STYLE_KEYS = STYLE_FIELDS + ("textAlign",)


def is_server_measured(req: CaptionPreviewRequest, client_hint: Optional[str] = None) -> bool:
    if req.measure == "server":
        return True
    return (client_hint or "").strip().lower() == "mobile" and req.measure is None


def collect_style(req: CaptionPreviewRequest) -> Dict[str, Any]:
    """Top-level style fields, overridden by the nested `style` object."""
    payload = req.model_dump(exclude_none=True)
    merged = {k: payload[k] for k in _TOP_LEVEL_STYLE_KEYS if k in payload}
    merged.update(req.style or {})
    return merged


def generate_preview(req: CaptionPreviewRequest, client_hint: Optional[str] = None) -> Dict[str, Any]:
    frame = FrameDimensions(W=req.frameW, H=req.frameH)
    if is_server_measured(req, client_hint):
        meta = build_server_measured_meta(req, frame)
    else:
        meta = build_client_measured_meta(req, frame)
    logger.info(
        "Caption preview %s: lines=%d raster=%dx%d y=%d hash=%s",
        "server" if is_server_measured(req, client_hint) else "client",
        len(meta["lines"]),
        meta["rasterW"],
        meta["rasterH"],
        meta["yPx_png"],
        meta["rasterHash"],
    )
    return meta


def _resolve_placement(req: CaptionPreviewRequest, style: Dict[str, Any]) -> tuple[Optional[str], Optional[float]]:
    placement = req.placement if req.placement is not None else style.get("placement")
    y_pct = req.yPct if req.yPct is not None else style.get("yPct")
    if not is_finite_number(y_pct) or not 0 <= y_pct <= 1:
        y_pct = None

    if placement is None and y_pct is None:
        raise CaptionPreviewError("server measurement requires placement or yPct")
    if placement is not None:
        placement = str(placement).lower()
        if placement not in PLACEMENTS:
            raise CaptionPreviewError(f"unknown placement: {placement}")
        if placement == "middle":
            placement = "center"
        if placement == "custom" and y_pct is None:
            raise CaptionPreviewError("custom placement requires yPct")
    return placement, y_pct


def build_server_measured_meta(req: CaptionPreviewRequest, frame: FrameDimensions) -> Dict[str, Any]:
    if not isinstance(req.text, str) or not req.text.strip():
        raise CaptionPreviewError("text required")

    raw_style = collect_style(req)
    placement, y_pct = _resolve_placement(req, raw_style)
    if req.wPct is not None:
        raw_style["wPct"] = req.wPct
    style = resolve_style(raw_style)

    font_px = js_round(style["fontPx"])
    line_spacing = float(style["lineSpacingPx"])
    padding = float(style["internalPaddingPx"])
    raster_w = js_round(style["wPct"] * frame.W)
    max_line_w = max(1.0, raster_w - 2 * padding)

    font = caption_raster.font_for_style(font_px, style.get("weightCss"), style.get("fontStyle"))
    lines = caption_raster.wrap_text(req.text, font, max_line_w, float(style["letterSpacingPx"]))
    if not lines:
        raise CaptionPreviewError("text has no renderable lines")

    total_text_h = caption_raster.text_block_height(len(lines), font_px, line_spacing)
    raster_h = compute_raster_h(
        total_text_h,
        padding,
        padding,
        style.get("shadowBlur"),
        style.get("shadowOffsetY"),
    )
    if raster_h >= frame.H:
        raise CaptionPreviewError("caption does not fit in the frame")

    if placement in ("top", "center", "bottom"):
        y_px = compute_y_px_from_placement(placement, raster_h, frame)
    else:
        y_px = clamp_y_px_to_frame(y_pct * frame.H, raster_h, frame)

    x_pct = req.xPct if req.xPct is not None else style.get("xPct")
    if is_finite_number(x_pct):
        x_px = int(clamp(js_round(x_pct * frame.W), 0, max(0, frame.W - raster_w)))
    else:
        x_px = js_round((frame.W - raster_w) / 2)

    return _rasterize(
        lines=lines,
        style=style,
        font=font,
        font_px=font_px,
        line_spacing=line_spacing,
        raster_w=raster_w,
        raster_h=raster_h,
        padding=padding,
        x_px=x_px,
        y_px=y_px,
        total_text_h=total_text_h,
        frame=frame,
    )


def build_client_measured_meta(req: CaptionPreviewRequest, frame: FrameDimensions) -> Dict[str, Any]:
    missing = [
        name
        for name in CLIENT_MEASURED_FIELDS
        if name != "lines" and not is_finite_number(getattr(req, name))
    ]
    if not req.lines or not any(line.strip() for line in req.lines):
        missing.append("lines")
    if missing:
        raise CaptionPreviewError(f"client-measured preview missing: {', '.join(missing)}")

    raster_w = js_round(req.rasterW)
    raster_h = js_round(req.rasterH)
    if raster_w <= 0 or raster_h <= 0:
        raise CaptionPreviewError("rasterW and rasterH must be positive")
    if raster_w > frame.W or raster_h >= frame.H:
        raise CaptionPreviewError("raster must be tight, not full frame")

    raw_style = collect_style(req)
    style = resolve_style(raw_style)

    # measured values are kept verbatim (no enforced font range)
    font_px = raw_style.get("fontPx")
    if not is_finite_number(font_px) or not FONT_PX_LIMITS[0] <= font_px <= FONT_PX_LIMITS[1]:
        font_px = style["fontPx"]
    font_px = js_round(font_px)
    line_spacing = raw_style.get("lineSpacingPx")
    if not is_finite_number(line_spacing) or line_spacing < 0:
        line_spacing = float(style["lineSpacingPx"])
    padding = req.rasterPadding if is_finite_number(req.rasterPadding) else float(style["internalPaddingPx"])
    pad_x = req.rasterPaddingX if is_finite_number(req.rasterPaddingX) else padding
    pad_y = req.rasterPaddingY if is_finite_number(req.rasterPaddingY) else padding

    lines = [line for line in req.lines if line.strip()]
    font = caption_raster.font_for_style(font_px, style.get("weightCss"), style.get("fontStyle"))
    # measured position is trusted but the raster must stay inside the frame
    if is_finite_number(req.xPx_png):
        x_px = int(clamp(js_round(req.xPx_png), 0, frame.W - raster_w))
    else:
        x_px = js_round((frame.W - raster_w) / 2)
    y_px = clamp_y_px_to_frame(req.yPx_png, raster_h, frame)

    return _rasterize(
        lines=lines,
        style=style,
        font=font,
        font_px=font_px,
        line_spacing=float(line_spacing),
        raster_w=raster_w,
        raster_h=raster_h,
        padding=float(padding),
        padding_x=float(pad_x),
        padding_y=float(pad_y),
        x_px=x_px,
        y_px=y_px,
        total_text_h=js_round(req.totalTextH),
        frame=frame,
    )


def _rasterize(
    *,
    lines,
    style,
    font,
    font_px: int,
    line_spacing: float,
    raster_w: int,
    raster_h: int,
    padding: float,
    x_px: int,
    y_px: int,
    total_text_h: int,
    frame: FrameDimensions,
    padding_x: Optional[float] = None,
    padding_y: Optional[float] = None,
) -> Dict[str, Any]:
    padding_x = padding if padding_x is None else padding_x
    padding_y = padding if padding_y is None else padding_y
    raster_style = caption_raster.raster_style_from(style, font_px, line_spacing)
    image = caption_raster.render_caption_raster(
        lines,
        raster_style,
        font,
        raster_w,
        raster_h,
        pad_top=padding_y,
        padding_x=padding_x,
    )
    return {
        "rasterUrl": caption_raster.encode_png_data_url(image),
        "rasterW": raster_w,
        "rasterH": raster_h,
        "xPx_png": x_px,
        "yPx_png": y_px,
        "rasterPadding": padding,
        "rasterPaddingX": padding_x,
        "rasterPaddingY": padding_y,
        "textAlign": raster_style.align,
        "xExpr_png": x_expr_for_align(raster_style.align),
        "lines": list(lines),
        "totalTextH": total_text_h,
        "rasterHash": caption_raster.raster_hash(image),
        "frameW": frame.W,
        "frameH": frame.H,
        "fontPx": font_px,
        "lineSpacingPx": line_spacing,
        "yPxFirstLine": js_round(y_px + padding),
    }
