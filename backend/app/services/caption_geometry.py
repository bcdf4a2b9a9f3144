"""
Caption placement geometry shared by the preview raster, the final render
and the headless overlay widget.

Every function here is total: malformed or missing numeric input falls back
to a documented default instead of raising, so partially-loaded styles still
produce a usable layout.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

SAFE_TOP_PX = 24
SAFE_BOTTOM_PX = 36
DESCENDER_PAD = 8
SHADOW_BLUR_DEFAULT = 12
SHADOW_OFFSET_Y_DEFAULT = 2

# Preset placement band used by the beat preview builder (fractions of H)
PRESET_SAFE_TOP_PCT = 0.10
PRESET_SAFE_BOTTOM_PCT = 0.10

PLACEMENT_Y_PCT = {
    "top": 0.10,
    "center": 0.50,
    "middle": 0.50,
    "bottom": 0.90,
}

# ffmpeg overlay x used when a meta has no absolute xPx_png
X_EXPR_BY_ALIGN = {
    "left": "0",
    "center": "(W-overlay_w)/2",
    "right": "(W-overlay_w)",
}
TEXT_ALIGNS = tuple(X_EXPR_BY_ALIGN)

_SHADOW_RE = re.compile(r"(-?\d+\.?\d*)px\s+(-?\d+\.?\d*)px(?:\s+(\d+\.?\d*)px)?")


@dataclass(frozen=True)
class FrameDimensions:
    W: int = 1080
    H: int = 1920


DEFAULT_FRAME = FrameDimensions()


@dataclass(frozen=True)
class ShadowExtent:
    blur: float = 0.0
    y: float = 0.0


def is_finite_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _finite_or(value: Any, default: float) -> float:
    return float(value) if is_finite_number(value) else default


def js_round(value: float) -> int:
    """Round half up, matching the browser's Math.round."""
    return int(math.floor(value + 0.5))


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(value, hi))


def clamp01(value: Any) -> float:
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(n):
        return 0.0
    return clamp(n, 0.0, 1.0)


def get_frame_dims(meta: Optional[Mapping[str, Any]] = None) -> FrameDimensions:
    """Frame size from a caption meta mapping, 1080x1920 when absent."""
    meta = meta or {}
    w = meta.get("frameW")
    h = meta.get("frameH")
    return FrameDimensions(
        W=int(w) if is_finite_number(w) and w > 0 else DEFAULT_FRAME.W,
        H=int(h) if is_finite_number(h) and h > 0 else DEFAULT_FRAME.H,
    )


def compute_raster_h(
    total_text_h: Any,
    pad_top: Any,
    pad_bottom: Any,
    shadow_blur: Any = None,
    shadow_offset_y: Any = None,
) -> int:
    """
    Height of the tight caption raster in pixels.

    Text block + vertical padding + a fixed descender pad + room for the
    shadow. Shadow blur and offset default to 12 and 2 when they are not
    finite numbers; other non-finite inputs count as 0.
    """
    blur = _finite_or(shadow_blur, SHADOW_BLUR_DEFAULT)
    off_y = _finite_or(shadow_offset_y, SHADOW_OFFSET_Y_DEFAULT)
    total = (
        _finite_or(total_text_h, 0.0)
        + _finite_or(pad_top, 0.0)
        + _finite_or(pad_bottom, 0.0)
        + DESCENDER_PAD
        + blur
        + max(0.0, off_y)
    )
    return max(0, js_round(total))


def compute_y_px_from_placement(
    placement: Any,
    raster_h: Any,
    frame: FrameDimensions = DEFAULT_FRAME,
) -> int:
    """
    Top of the raster inside the frame for a placement preset.

    top -> SAFE_TOP_PX, center -> centered, anything else -> bottom with
    SAFE_BOTTOM_PX. Rasters too tall for the safe margins are pulled back
    into [0, H - rasterH].
    """
    h = _finite_or(raster_h, 0.0)
    if placement == "top":
        y = SAFE_TOP_PX
    elif placement == "center":
        y = js_round((frame.H - h) / 2)
    else:
        y = js_round(frame.H - h - SAFE_BOTTOM_PX)
    return int(clamp(y, 0, max(0, frame.H - js_round(h))))


def parse_shadow(text_shadow: Optional[str]) -> ShadowExtent:
    """
    Largest blur and vertical offset across a CSS text-shadow list.

    Entries that do not look like `<x>px <y>px [<blur>px]` are skipped.
    Negative offsets never lower the result below 0.
    """
    if not text_shadow or not isinstance(text_shadow, str) or text_shadow == "none":
        return ShadowExtent(0.0, 0.0)

    max_blur = 0.0
    max_y = 0.0
    for part in (p.strip() for p in text_shadow.split(",")):
        m = _SHADOW_RE.search(part)
        if not m:
            continue
        y = float(m.group(2))
        blur = float(m.group(3)) if m.group(3) else 0.0
        max_y = max(max_y, y)
        max_blur = max(max_blur, blur)
    return ShadowExtent(blur=max_blur, y=max_y)


def y_pct_from_placement(placement: Any) -> float:
    key = str(placement or "bottom").lower()
    return PLACEMENT_Y_PCT.get(key, PLACEMENT_Y_PCT["bottom"])


def compute_preset_y_px(
    placement: str,
    raster_h: Any,
    frame: FrameDimensions = DEFAULT_FRAME,
) -> int:
    """Preset placement kept inside the 10%..90% band of the frame."""
    h = _finite_or(raster_h, 0.0)
    safe_top = js_round(frame.H * PRESET_SAFE_TOP_PCT)
    safe_bottom = js_round(frame.H * PRESET_SAFE_BOTTOM_PCT)
    key = str(placement or "bottom").lower()
    if key == "top":
        y = safe_top
    elif key in ("middle", "center"):
        y = js_round(frame.H * 0.5 - h / 2)
    else:
        y = js_round(frame.H * 0.9 - h)
    return int(clamp(y, safe_top, frame.H - safe_bottom - h))


def clamp_y_px_to_frame(y_px: float, raster_h: float, frame: FrameDimensions = DEFAULT_FRAME) -> int:
    return int(clamp(js_round(y_px), 0, max(0, frame.H - js_round(raster_h))))


# Stage clamping used by the overlay widget


def clamp_drag_position(
    origin_x: float,
    origin_y: float,
    dx: float,
    dy: float,
    stage_w: float,
    stage_h: float,
    box_w: float,
    box_h: float,
) -> Tuple[float, float]:
    """New box offset after a pointer move, kept inside [0, stage - box]."""
    x = max(0.0, min(origin_x + dx, stage_w - box_w))
    y = max(0.0, min(origin_y + dy, stage_h - box_h))
    return x, y


def clamp_box_to_stage(
    left: float,
    top: float,
    width: float,
    height: float,
    stage_w: float,
    stage_h: float,
) -> Tuple[float, float, float, float]:
    """Resize containment: shrink to the stage, then pull left/top back in."""
    x = max(0.0, min(left, stage_w - width))
    y = max(0.0, min(top, stage_h - height))
    return x, y, min(width, stage_w), min(height, stage_h)


def clamp_with_padding(
    value: float,
    box_size: float,
    stage_size: float,
    pad: float = 8,
) -> float:
    return min(max(value, pad), max(0.0, stage_size - box_size - pad))


def normalize_text_align(value: Any) -> Optional[str]:
    """left/center/right, or None for anything else."""
    if not isinstance(value, str):
        return None
    key = value.strip().lower()
    return key if key in TEXT_ALIGNS else None


def x_expr_for_align(text_align: Any) -> str:
    return X_EXPR_BY_ALIGN[normalize_text_align(text_align) or "center"]
