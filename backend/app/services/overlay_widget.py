"""
Headless model of the draggable caption overlay.

The browser widget is a caption box anchored inside a fixed-aspect "stage".
This module keeps the same state and clamping rules without a DOM: box
position/size are CSS length strings ("10%", "120px") resolved against the
stage, text is measured with the same Pillow metrics the server raster uses,
and pointer/resize events are plain method calls.
"""

import enum
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from app.core.logging import get_logger
from app.services import caption_raster
from app.services.caption_geometry import (
    DEFAULT_FRAME,
    FrameDimensions,
    clamp01,
    clamp_box_to_stage,
    clamp_drag_position,
    clamp_with_padding,
    compute_preset_y_px,
    compute_raster_h,
    compute_y_px_from_placement,
    is_finite_number,
    js_round,
    parse_shadow,
    x_expr_for_align,
    y_pct_from_placement,
)
from app.services.caption_style import extract_style_only, normalize_weight

logger = get_logger(__name__)

MIN_FONT_PX = 18
MAX_FONT_PX = 200
MIN_BOX_W = 60
MIN_BOX_H = 40
VISIBLE_PAD = 8
TOP_Z_INDEX = 99999

# Layers that must never intercept pointer events over the caption
MEDIA_LAYER_KINDS = ("canvas", "img", "video", "preview-overlay")

DEFAULT_SHADOW_COLOR = "rgba(0,0,0,0.6)"


class DragState(str, enum.Enum):
    idle = "idle"
    dragging = "dragging"


@dataclass
class Layer:
    name: str
    kind: str
    z_index: int = 0
    pointer_events: str = "auto"


@dataclass
class Stage:
    """Fixed-aspect preview area (CSS px)."""
    width: float
    height: float
    layers: List[Layer] = field(default_factory=list)
    classes: set = field(default_factory=set)
    scrolled_into_view: bool = False

    @property
    def measurable(self) -> bool:
        return self.width > 0 and self.height > 0


@dataclass
class Padding:
    top: float = 28
    right: float = 12
    bottom: float = 12
    left: float = 12

    @property
    def x(self) -> float:
        return self.left + self.right

    @property
    def y(self) -> float:
        return self.top + self.bottom


@dataclass
class ContentStyle:
    font_family: str = "DejaVu Sans"
    font_px: float = 38
    weight_css: str = "800"
    font_style: str = "normal"
    line_height: float = 1.15
    letter_spacing_px: float = 0.0
    color: str = "#ffffff"
    opacity: float = 1.0
    text_align: str = "center"
    padding: Padding = field(default_factory=Padding)
    text_shadow: str = f"0px 2px 12px {DEFAULT_SHADOW_COLOR}"
    stroke_px: float = 0.0
    stroke_color: str = "rgba(0,0,0,0.85)"
    max_width: Optional[float] = None


@dataclass
class CaptionBox(Layer):
    text: str = "Your quote goes here…"
    style: Dict[str, str] = field(default_factory=dict)
    content: ContentStyle = field(default_factory=ContentStyle)
    classes: set = field(default_factory=set)


@dataclass
class TextMeasurement:
    lines: List[str]
    width: float
    height: float


class TextMeasurer(Protocol):
    def measure(self, text: str, style: ContentStyle, max_width: float) -> TextMeasurement:
        ...


class PillowTextMeasurer:
    """Measures like the DOM: n lines * line-height, widest wrapped line."""

    def measure(self, text: str, style: ContentStyle, max_width: float) -> TextMeasurement:
        line_spacing = max(0.0, style.font_px * style.line_height - style.font_px)
        layout = caption_raster.layout_text(
            text,
            style.font_px,
            max(1.0, max_width),
            line_spacing_px=line_spacing,
            letter_spacing_px=style.letter_spacing_px,
            weight_css=style.weight_css,
            font_style=style.font_style,
        )
        height = len(layout.lines) * style.font_px * style.line_height
        return TextMeasurement(layout.lines, layout.max_line_width, height)


@dataclass
class DragSession:
    pointer_id: int
    start_x: float
    start_y: float
    origin_x: float
    origin_y: float
    stage_w: float
    stage_h: float
    box_w: float
    box_h: float


def parse_css_length(value: Any, reference: float) -> Optional[float]:
    """Pixels for "12.5%" (of `reference`), "40px" or a bare number; else None."""
    if is_finite_number(value):
        return float(value)
    if not isinstance(value, str):
        return None
    text = value.strip().lower()
    try:
        if text.endswith("%"):
            return float(text[:-1]) / 100.0 * reference
        if text.endswith("px"):
            return float(text[:-2])
        return float(text)
    except ValueError:
        return None


def _pct(value: float) -> str:
    return f"{value * 100}%"


def _px(value: float) -> str:
    return f"{value}px"


class OverlayWidget:
    """
    One interactive caption box inside a stage.

    States: idle and dragging. pointer_down on the handle enters dragging,
    pointer_up / pointer_cancel return to idle.
    """

    def __init__(
        self,
        stage: Optional[Stage],
        measurer: Optional[TextMeasurer] = None,
        min_font_px: int = MIN_FONT_PX,
    ):
        if stage is None:
            raise ValueError("stage not found")
        self.stage = stage
        self.measurer = measurer or PillowTextMeasurer()
        self.min_font_px = min_font_px
        self.state = DragState.idle
        self.placement: Optional[str] = None
        self._drag: Optional[DragSession] = None
        self._last_meta: Dict[str, Any] = {}

        self.stage.classes.add("caption-stage")
        self.box: Optional[CaptionBox] = CaptionBox(
            name="caption-box",
            kind="caption-box",
            z_index=9999,
            style={"left": "10%", "top": "65%", "width": "80%", "height": "auto"},
        )
        self.stage.layers.append(self.box)
        self.ensure_overlay_top_and_visible()

    # geometry

    def box_rect(self) -> Tuple[float, float, float, float]:
        """Box left, top, width, height in stage px."""
        sw, sh = self.stage.width, self.stage.height
        style = self.box.style
        width = parse_css_length(style.get("width"), sw)
        if width is None:
            width = sw
        left = parse_css_length(style.get("left"), sw) or 0.0
        top = parse_css_length(style.get("top"), sh) or 0.0
        height = parse_css_length(style.get("height"), sh)
        if height is None:
            height = self._measure(width).height + self.box.content.padding.y
        return left, top, width, height

    def _content_box(self, width: float, height: float) -> Tuple[float, float]:
        pad = self.box.content.padding
        return max(0.0, width - pad.x), max(0.0, height - pad.y)

    def _measure(self, box_width: float, font_px: Optional[float] = None) -> TextMeasurement:
        content = self.box.content
        style = content
        if font_px is not None and font_px != content.font_px:
            style = ContentStyle(**{**content.__dict__, "font_px": font_px})
        max_w = max(0.0, box_width - content.padding.x)
        return self.measurer.measure(self.box.text, style, max_w)

    def _fits(self, font_px: float) -> bool:
        _, _, w, h = self.box_rect()
        max_w, max_h = self._content_box(w, h)
        if self.box.style.get("height", "auto") == "auto":
            max_h = math.inf
        m = self._measure(w, font_px)
        return m.width <= max_w + 0.5 and m.height <= max_h + 0.5

    # drag

    def pointer_down(self, pointer_id: int, x: float, y: float, target: str = "handle") -> bool:
        if target != "handle" or self.state is DragState.dragging:
            return False
        if not self.stage.measurable:
            logger.debug("Stage not measurable; ignoring pointer down")
            return False
        left, top, w, h = self.box_rect()
        self._drag = DragSession(
            pointer_id=pointer_id,
            start_x=x,
            start_y=y,
            origin_x=left,
            origin_y=top,
            stage_w=self.stage.width,
            stage_h=self.stage.height,
            box_w=w,
            box_h=h,
        )
        self.state = DragState.dragging
        self.box.classes.add("is-dragging")
        return True

    def pointer_move(self, x: float, y: float, pointer_id: Optional[int] = None) -> Optional[Tuple[float, float]]:
        drag = self._drag
        if self.state is not DragState.dragging or drag is None:
            return None
        if pointer_id is not None and pointer_id != drag.pointer_id:
            return None
        nx, ny = clamp_drag_position(
            drag.origin_x,
            drag.origin_y,
            x - drag.start_x,
            y - drag.start_y,
            drag.stage_w,
            drag.stage_h,
            drag.box_w,
            drag.box_h,
        )
        self.box.style["left"] = _pct(nx / drag.stage_w)
        self.box.style["top"] = _pct(ny / drag.stage_h)
        return nx, ny

    def pointer_up(self, pointer_id: Optional[int] = None) -> None:
        if self.state is not DragState.dragging:
            return
        if pointer_id is not None and self._drag and pointer_id != self._drag.pointer_id:
            return
        self._drag = None
        self.state = DragState.idle
        self.box.classes.discard("is-dragging")
        self.placement = "custom"

    pointer_cancel = pointer_up

    # resize

    def on_resize(self, stage_w: Optional[float] = None, stage_h: Optional[float] = None) -> None:
        """Resize observer / window resize: keep the box inside the stage."""
        if stage_w is not None:
            self.stage.width = stage_w
        if stage_h is not None:
            self.stage.height = stage_h
        if self.state is DragState.dragging or not self.stage.measurable:
            return
        left, top, w, h = self.box_rect()
        x, y, w, h = clamp_box_to_stage(left, top, w, h, self.stage.width, self.stage.height)
        self.box.style["left"] = _pct(x / self.stage.width)
        self.box.style["top"] = _pct(y / self.stage.height)
        self.box.style["width"] = _px(w)
        self.box.style["height"] = _px(h)
        self.shrink_to_fit()

    def resize_box(self, dw: float, dh: float) -> Tuple[float, float]:
        """Drag of the bottom-right resize handle by (dw, dh) px."""
        left, top, w, h = self.box_rect()
        w = max(MIN_BOX_W, min(w + dw, self.stage.width - left))
        h = max(MIN_BOX_H, min(h + dh, self.stage.height - top))
        self.box.style["width"] = _px(w)
        self.box.style["height"] = _px(h)
        self.shrink_to_fit()
        return w, h

    # text fitting

    def shrink_to_fit(self, min_px: Optional[int] = None) -> int:
        """
        Step the font down 1px at a time until the text fits the content box.

        Max width is pinned to the container's content width first. Stops at
        `min_px` (default: the widget minimum) even if the text still overflows.
        """
        floor = self.min_font_px if min_px is None else min_px
        content = self.box.content
        _, _, w, _ = self.box_rect()
        content.max_width = self._content_box(w, 0)[0]

        if self._fits(content.font_px):
            return js_round(content.font_px)
        px = int(math.floor(content.font_px))
        while px > floor and not self._fits(px):
            px -= 1
        content.font_px = max(px, min(floor, content.font_px))
        return js_round(content.font_px)

    def fit_text(self) -> int:
        """Largest font in [min_font_px, MAX_FONT_PX] that fits (binary search)."""
        lo, hi = self.min_font_px, MAX_FONT_PX
        best = self.min_font_px
        while lo <= hi:
            mid = (lo + hi) // 2
            if self._fits(mid):
                best = mid
                lo = mid + 1
            else:
                hi = mid - 1
        self.box.content.font_px = best
        return best

    def set_text(self, text: str, auto_size: bool = False) -> None:
        self.box.text = text
        if auto_size:
            self.fit_text()
        else:
            self.shrink_to_fit()
        self.ensure_overlay_top_and_visible()

    # meta export / import

    def get_caption_meta(self, frame: FrameDimensions = DEFAULT_FRAME) -> Dict[str, Any]:
        """
        Normalized geometry + computed style of the live box.

        Percentages are relative to the stage; px fields (font, spacing,
        padding, raster geometry) are in frame space, scaled by
        frame.H / stage.height.
        """
        if not self.stage.measurable:
            logger.warning("Stage not measurable; returning last known caption meta")
            return self._fallback_meta(frame)

        sw, sh = self.stage.width, self.stage.height
        left, top, w, h = self.box_rect()
        content = self.box.content
        measured = self._measure(w)
        scale = frame.H / sh

        font_px = js_round(content.font_px * scale)
        line_spacing = max(0, js_round((content.font_px * content.line_height - content.font_px) * scale))
        pad = content.padding
        pad_top = js_round(pad.top * scale)
        pad_bottom = js_round(pad.bottom * scale)
        shadow = parse_shadow(content.text_shadow)
        total_text_h = caption_raster.text_block_height(len(measured.lines), font_px, line_spacing)
        raster_h = compute_raster_h(total_text_h, pad_top, pad_bottom, shadow.blur * scale, shadow.y * scale)
        raster_padding = js_round((pad_top + pad_bottom) / 2)

        x_pct, y_pct, w_pct, h_pct = left / sw, top / sh, w / sw, h / sh
        y_px_png = js_round(y_pct * frame.H)

        meta = {
            "text": self.box.text,
            "lines": list(measured.lines),
            "xPct": x_pct,
            "yPct": y_pct,
            "wPct": w_pct,
            "hPct": h_pct,
            "placement": self.placement or "custom",
            # typography
            "fontFamily": content.font_family,
            "fontPx": font_px,
            "lineHeight": content.line_height,
            "lineSpacingPx": line_spacing,
            "letterSpacingPx": content.letter_spacing_px * scale,
            "weightCss": normalize_weight(content.weight_css),
            "fontStyle": "italic" if content.font_style == "italic" else "normal",
            "textAlign": content.text_align,
            # color & effects
            "color": content.color,
            "opacity": content.opacity,
            "strokePx": content.stroke_px * scale,
            "strokeColor": content.stroke_color,
            "shadowBlur": shadow.blur * scale,
            "shadowOffsetX": 0,
            "shadowOffsetY": shadow.y * scale,
            "shadowColor": DEFAULT_SHADOW_COLOR,
            "paddingPx": js_round(pad.left * scale),
            "padding": {
                "top": pad_top,
                "right": js_round(pad.right * scale),
                "bottom": pad_bottom,
                "left": js_round(pad.left * scale),
            },
            # frame-space raster geometry
            "frameW": frame.W,
            "frameH": frame.H,
            "rasterW": js_round(w_pct * frame.W),
            "rasterH": raster_h,
            "rasterPadding": raster_padding,
            "rasterPaddingX": max(js_round(pad.left * scale), js_round(pad.right * scale)),
            "rasterPaddingY": max(pad_top, pad_bottom),
            "totalTextH": total_text_h,
            "xPx_png": js_round(clamp01(x_pct) * frame.W),
            "xExpr_png": x_expr_for_align(content.text_align),
            "yPx_png": y_px_png,
            "yPxFirstLine": y_px_png + raster_padding,
            "ssotVersion": 3,
        }
        self._last_meta = meta
        return meta

    def _fallback_meta(self, frame: FrameDimensions) -> Dict[str, Any]:
        last = self._last_meta
        placement = self.placement or "bottom"
        y_pct = last.get("yPct")
        if not is_finite_number(y_pct):
            y_pct = y_pct_from_placement(placement)
        x_pct = last.get("xPct") if is_finite_number(last.get("xPct")) else 0.04
        w_pct = last.get("wPct") if is_finite_number(last.get("wPct")) else 0.88
        return {
            **last,
            "text": self.box.text,
            "xPct": x_pct,
            "yPct": y_pct,
            "wPct": w_pct,
            "hPct": last.get("hPct") if is_finite_number(last.get("hPct")) else 0.3,
            "placement": placement,
            "frameW": frame.W,
            "frameH": frame.H,
            "xPx_png": js_round(x_pct * frame.W),
            "yPx_png": js_round(y_pct * frame.H),
        }

    def apply_caption_meta(self, meta: Any, silent: bool = False) -> None:
        """
        Inverse of get_caption_meta. Every field is optional and only applied
        when present with the expected type.
        """
        if not isinstance(meta, Mapping):
            return
        box = self.box
        content = box.content

        frame_h = meta.get("frameH")
        to_stage = 1.0
        if is_finite_number(frame_h) and frame_h > 0 and self.stage.height > 0:
            to_stage = self.stage.height / frame_h

        if isinstance(meta.get("text"), str):
            box.text = meta["text"]
        for key, css in (("xPct", "left"), ("yPct", "top"), ("wPct", "width"), ("hPct", "height")):
            if is_finite_number(meta.get(key)):
                box.style[css] = _pct(meta[key])

        if is_finite_number(meta.get("fontPx")) and meta["fontPx"] > 0:
            content.font_px = round(meta["fontPx"] * to_stage, 4)
        if is_finite_number(meta.get("lineHeight")) and meta["lineHeight"] > 0:
            content.line_height = float(meta["lineHeight"])
        if is_finite_number(meta.get("letterSpacingPx")):
            content.letter_spacing_px = meta["letterSpacingPx"] * to_stage
        for key, attr in (
            ("weightCss", "weight_css"),
            ("fontStyle", "font_style"),
            ("textAlign", "text_align"),
            ("color", "color"),
            ("fontFamily", "font_family"),
            ("strokeColor", "stroke_color"),
        ):
            if isinstance(meta.get(key), str) and meta[key]:
                setattr(content, attr, meta[key])
        if is_finite_number(meta.get("weightCss")):
            content.weight_css = str(int(meta["weightCss"]))
        if is_finite_number(meta.get("opacity")):
            content.opacity = clamp01(meta["opacity"])
        if is_finite_number(meta.get("strokePx")):
            content.stroke_px = max(0.0, meta["strokePx"] * to_stage)

        padding = meta.get("padding")
        if isinstance(padding, Mapping) and all(is_finite_number(padding.get(k)) for k in ("top", "right", "bottom", "left")):
            content.padding = Padding(
                top=padding["top"] * to_stage,
                right=padding["right"] * to_stage,
                bottom=padding["bottom"] * to_stage,
                left=padding["left"] * to_stage,
            )
        elif is_finite_number(meta.get("paddingPx")):
            p = meta["paddingPx"] * to_stage
            content.padding = Padding(p, p, p, p)

        blur = meta.get("shadowBlur")
        off_y = meta.get("shadowOffsetY")
        if is_finite_number(blur) or is_finite_number(off_y):
            current = parse_shadow(content.text_shadow)
            blur_px = blur * to_stage if is_finite_number(blur) else current.blur
            y_px = off_y * to_stage if is_finite_number(off_y) else current.y
            color = meta["shadowColor"] if isinstance(meta.get("shadowColor"), str) else DEFAULT_SHADOW_COLOR
            content.text_shadow = f"0px {y_px}px {blur_px}px {color}"

        if isinstance(meta.get("placement"), str):
            self.placement = meta["placement"]

        if not silent:
            self.shrink_to_fit()

    # visibility / z-order

    def ensure_overlay_top_and_visible(self) -> None:
        """
        Put the box on top of the stage, make it hit-testable, demote media
        layers, and pull it back inside the stage with an 8px margin.
        """
        stage, box = self.stage, self.box
        if stage is None or box is None:
            return

        if box in stage.layers:
            stage.layers.remove(box)
        stage.layers.append(box)
        box.z_index = TOP_Z_INDEX
        box.pointer_events = "auto"
        for layer in stage.layers:
            if layer is not box and layer.kind in MEDIA_LAYER_KINDS:
                layer.pointer_events = "none"
                layer.z_index = 1

        sw, sh = stage.width, stage.height
        _, _, bw, bh = self.box_rect()
        bw = bw or 280
        bh = bh or 100

        for key, reference, box_size, fallback in (
            ("left", sw, bw, (sw - bw) / 2),
            ("top", sh, bh, (sh - bh) / 3),
        ):
            raw = box.style.get(key)
            current = parse_css_length(raw, reference)
            target = clamp_with_padding(fallback if current is None else current, box_size, reference, VISIBLE_PAD)
            if current is not None and target == current:
                continue
            if str(raw).strip().endswith("%"):
                box.style[key] = _pct(target / max(1.0, reference))
            else:
                box.style[key] = _px(target)
        stage.scrolled_into_view = True

    # placement presets / preview payload

    def snap_to_placement(self, placement: str, frame: FrameDimensions = DEFAULT_FRAME) -> Optional[int]:
        """Move the box to a preset placement; returns the new top in stage px."""
        key = "center" if placement == "middle" else placement
        if not self.stage.measurable:
            self.placement = placement
            y_pct = y_pct_from_placement(placement)
            self._last_meta = {
                **self._last_meta,
                "placement": placement,
                "yPct": y_pct,
                "yPx_png": js_round(y_pct * frame.H),
            }
            logger.warning("Stage not measurable; stored placement %s only", placement)
            return None

        meta = self.get_caption_meta(frame)
        target_y = compute_y_px_from_placement(key, meta["rasterH"], frame)
        css_top = js_round(target_y * self.stage.height / frame.H)
        self.box.style["top"] = _px(css_top)
        self.placement = placement
        return css_top

    def build_preview_payload(self, frame: FrameDimensions = DEFAULT_FRAME) -> Dict[str, Any]:
        """Client-measured body for POST /api/caption/preview."""
        meta = self.get_caption_meta(frame)
        payload = {
            "ssotVersion": 3,
            "mode": "raster",
            "text": meta["text"],
            "lines": meta.get("lines", []),
            "frameW": frame.W,
            "frameH": frame.H,
            "textAlign": meta.get("textAlign", "center"),
        }
        for key in (
            "rasterW",
            "rasterH",
            "rasterPadding",
            "rasterPaddingX",
            "rasterPaddingY",
            "xPx_png",
            "xExpr_png",
            "yPx_png",
            "totalTextH",
        ):
            if key in meta:
                payload[key] = meta[key]
        payload.update(extract_style_only(meta))

        # preset placements sit inside the 10%..90% band of the frame
        placement = str(meta.get("placement") or "").lower()
        raster_h = meta.get("rasterH")
        if placement in ("top", "middle", "center", "bottom") and is_finite_number(raster_h) and raster_h > 0:
            y_px = compute_preset_y_px(placement, raster_h, frame)
            payload["yPx_png"] = y_px
            payload["yPct"] = y_px / frame.H

        for key in ("xPct", "yPct", "wPct"):
            if key in payload:
                payload[key] = clamp01(payload[key])
        return payload
