"""
Pillow-based caption rasterization.

Measures and wraps caption text with real font metrics and draws the tight
RGBA raster that is composited onto the final video. The same wrapping code
backs the headless overlay widget, so the preview and the render agree on
line breaks.
"""

import base64
import hashlib
import io
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageFilter, ImageFont

from app.core.config import get_settings
from app.core.logging import get_logger
from app.services.caption_geometry import is_finite_number, js_round
from app.services.caption_style import is_bold

settings = get_settings()
logger = get_logger(__name__)

RGBA = Tuple[int, int, int, int]

SYSTEM_FONT_DIRS = (
    "/usr/share/fonts/truetype/dejavu",
    "/usr/share/fonts/dejavu",
    "/usr/share/fonts/TTF",
    "/usr/local/share/fonts",
    "/Library/Fonts",
)

# (bold, italic) -> DejaVu file name
_DEJAVU_FILES = {
    (False, False): "DejaVuSans.ttf",
    (True, False): "DejaVuSans-Bold.ttf",
    (False, True): "DejaVuSans-Oblique.ttf",
    (True, True): "DejaVuSans-BoldOblique.ttf",
}

_RGBA_RE = re.compile(
    r"^rgba?\(\s*([\d.]+)\s*,\s*([\d.]+)\s*,\s*([\d.]+)\s*(?:,\s*([\d.]+)\s*)?\)$",
    re.IGNORECASE,
)

DATA_URL_PREFIX = "data:image/png;base64,"


@dataclass
class TextLayout:
    """Wrapped caption block."""
    lines: List[str]
    line_widths: List[float]
    font_px: int
    line_spacing_px: float
    total_text_h: int
    max_line_width: float = 0.0


@dataclass
class RasterStyle:
    font_px: int
    line_spacing_px: float = 0.0
    letter_spacing_px: float = 0.0
    color: RGBA = (255, 255, 255, 255)
    opacity: float = 1.0
    stroke_px: float = 0.0
    stroke_color: RGBA = (0, 0, 0, 217)
    shadow_blur: float = 0.0
    shadow_offset_x: float = 0.0
    shadow_offset_y: float = 0.0
    shadow_color: RGBA = (0, 0, 0, 153)
    align: str = "center"


def _font_candidates(bold: bool, italic: bool) -> List[str]:
    name = _DEJAVU_FILES[(bold, italic)]
    dirs = [settings.FONT_DIR, *SYSTEM_FONT_DIRS]
    return [os.path.join(d, name) for d in dirs] + [name]


@lru_cache(maxsize=128)
def load_font(size: int, bold: bool = False, italic: bool = False) -> ImageFont.ImageFont:
    """
    DejaVu Sans at `size` px, falling back to Pillow's bundled font.

    Only DejaVu Sans is shipped for captions; other family names resolve to it
    so preview and render use identical metrics.
    """
    size = max(1, int(size))
    for path in _font_candidates(bold, italic):
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            continue
    logger.warning("DejaVu Sans not found (bold=%s italic=%s); using Pillow default font", bold, italic)
    return ImageFont.load_default(size=size)


def font_for_style(font_px: float, weight_css: Any = None, font_style: Any = None) -> ImageFont.ImageFont:
    italic = str(font_style or "").lower() in ("italic", "oblique")
    return load_font(js_round(font_px), is_bold(weight_css), italic)


def parse_css_color(value: Any, default: RGBA = (255, 255, 255, 255)) -> RGBA:
    """Parse `#hex`, named colors, `rgb()` and `rgba()` with a 0..1 alpha."""
    if not isinstance(value, str) or not value.strip():
        return default
    text = value.strip()
    m = _RGBA_RE.match(text)
    if m:
        r, g, b = (max(0, min(255, js_round(float(c)))) for c in m.group(1, 2, 3))
        alpha = float(m.group(4)) if m.group(4) is not None else 1.0
        if alpha > 1:
            alpha = alpha / 255.0
        return (r, g, b, max(0, min(255, js_round(alpha * 255))))
    try:
        rgb = ImageColor.getrgb(text)
    except ValueError:
        return default
    if len(rgb) == 4:
        return rgb  # type: ignore[return-value]
    return (rgb[0], rgb[1], rgb[2], 255)


def measure_line(font: ImageFont.ImageFont, text: str, letter_spacing_px: float = 0.0) -> float:
    if not text:
        return 0.0
    if not letter_spacing_px:
        return float(font.getlength(text))
    return float(sum(font.getlength(ch) for ch in text)) + letter_spacing_px * (len(text) - 1)


def split_paragraphs(text: Any) -> List[str]:
    if not isinstance(text, str):
        return []
    return [p.strip() for p in text.split("\n") if p.strip()]


def wrap_text(
    text: str,
    font: ImageFont.ImageFont,
    max_width: float,
    letter_spacing_px: float = 0.0,
) -> List[str]:
    """
    Greedy word wrap honoring explicit newlines.

    A word wider than `max_width` is kept whole on its own line.
    """
    lines: List[str] = []
    for paragraph in split_paragraphs(text):
        current = ""
        for word in paragraph.split():
            candidate = f"{current} {word}" if current else word
            if current and measure_line(font, candidate, letter_spacing_px) > max_width:
                lines.append(current)
                current = word
            else:
                current = candidate
        if current:
            lines.append(current)
    return lines


def text_block_height(line_count: int, font_px: float, line_spacing_px: float) -> int:
    if line_count <= 0:
        return 0
    return js_round(line_count * font_px + (line_count - 1) * line_spacing_px)


def layout_text(
    text: str,
    font_px: float,
    max_width: float,
    line_spacing_px: float = 0.0,
    letter_spacing_px: float = 0.0,
    weight_css: Any = None,
    font_style: Any = None,
) -> TextLayout:
    font = font_for_style(font_px, weight_css, font_style)
    lines = wrap_text(text, font, max_width, letter_spacing_px)
    widths = [measure_line(font, line, letter_spacing_px) for line in lines]
    return TextLayout(
        lines=lines,
        line_widths=widths,
        font_px=js_round(font_px),
        line_spacing_px=line_spacing_px,
        total_text_h=text_block_height(len(lines), js_round(font_px), line_spacing_px),
        max_line_width=max(widths) if widths else 0.0,
    )


def _draw_line(
    draw: ImageDraw.ImageDraw,
    xy: Tuple[float, float],
    text: str,
    font: ImageFont.ImageFont,
    fill: RGBA,
    letter_spacing_px: float,
    stroke_width: int = 0,
    stroke_fill: Optional[RGBA] = None,
) -> None:
    x, y = xy
    if not letter_spacing_px:
        draw.text((x, y), text, font=font, fill=fill, stroke_width=stroke_width, stroke_fill=stroke_fill)
        return
    for ch in text:
        draw.text((x, y), ch, font=font, fill=fill, stroke_width=stroke_width, stroke_fill=stroke_fill)
        x += font.getlength(ch) + letter_spacing_px


def _line_x(align: str, line_w: float, raster_w: int, padding_x: float) -> int:
    if align == "left":
        return js_round(padding_x)
    if align == "right":
        return js_round(raster_w - padding_x - line_w)
    return js_round((raster_w - line_w) / 2)


def render_caption_raster(
    lines: List[str],
    style: RasterStyle,
    font: ImageFont.ImageFont,
    raster_w: int,
    raster_h: int,
    pad_top: float,
    padding_x: float,
) -> Image.Image:
    """
    Draw `lines` into a transparent `raster_w` x `raster_h` image.

    Line i starts at pad_top + i * (fontPx + lineSpacingPx). Shadow is drawn
    first on its own blurred layer, then stroke and fill; opacity scales the
    final alpha.
    """
    size = (max(1, int(raster_w)), max(1, int(raster_h)))
    step = style.font_px + style.line_spacing_px
    positions = []
    for i, line in enumerate(lines):
        line_w = measure_line(font, line, style.letter_spacing_px)
        positions.append((_line_x(style.align, line_w, size[0], padding_x), js_round(pad_top + i * step)))

    image = Image.new("RGBA", size, (0, 0, 0, 0))

    has_shadow = style.shadow_blur > 0 or style.shadow_offset_x or style.shadow_offset_y
    if has_shadow and style.shadow_color[3] > 0:
        shadow = Image.new("RGBA", size, (0, 0, 0, 0))
        shadow_draw = ImageDraw.Draw(shadow)
        for line, (x, y) in zip(lines, positions):
            _draw_line(
                shadow_draw,
                (x + style.shadow_offset_x, y + style.shadow_offset_y),
                line,
                font,
                style.shadow_color,
                style.letter_spacing_px,
            )
        if style.shadow_blur > 0:
            shadow = shadow.filter(ImageFilter.GaussianBlur(style.shadow_blur / 2))
        image = Image.alpha_composite(image, shadow)

    text_layer = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(text_layer)
    stroke_width = js_round(style.stroke_px)
    for line, (x, y) in zip(lines, positions):
        _draw_line(
            draw,
            (x, y),
            line,
            font,
            style.color,
            style.letter_spacing_px,
            stroke_width=stroke_width,
            stroke_fill=style.stroke_color if stroke_width > 0 else None,
        )
    image = Image.alpha_composite(image, text_layer)

    if style.opacity < 1:
        alpha = image.getchannel("A").point(lambda a: js_round(a * style.opacity))
        image.putalpha(alpha)
    return image


def raster_style_from(style: Dict[str, Any], font_px: float, line_spacing_px: float) -> RasterStyle:
    """Build a RasterStyle from a resolved caption style mapping."""

    def num(key: str, default: float = 0.0) -> float:
        value = style.get(key)
        return float(value) if is_finite_number(value) else default

    align = str(style.get("textAlign") or "center").lower()
    return RasterStyle(
        font_px=js_round(font_px),
        line_spacing_px=line_spacing_px,
        letter_spacing_px=num("letterSpacingPx"),
        color=parse_css_color(style.get("color")),
        opacity=max(0.0, min(1.0, num("opacity", 1.0))),
        stroke_px=max(0.0, num("strokePx")),
        stroke_color=parse_css_color(style.get("strokeColor"), (0, 0, 0, 217)),
        shadow_blur=max(0.0, num("shadowBlur")),
        shadow_offset_x=num("shadowOffsetX"),
        shadow_offset_y=num("shadowOffsetY"),
        shadow_color=parse_css_color(style.get("shadowColor"), (0, 0, 0, 153)),
        align=align if align in ("left", "center", "right") else "center",
    )


def raster_hash(image: Image.Image) -> str:
    """Content address of a raster: size plus RGBA pixels."""
    rgba = image.convert("RGBA")
    digest = hashlib.sha256(f"{rgba.width}x{rgba.height}:".encode("ascii"))
    digest.update(rgba.tobytes())
    return digest.hexdigest()[:16]


def encode_png_data_url(image: Image.Image) -> str:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return DATA_URL_PREFIX + base64.b64encode(buf.getvalue()).decode("ascii")


def decode_data_url(data_url: str) -> Image.Image:
    """Decode a base64 image data URL. Raises ValueError on anything else."""
    if not isinstance(data_url, str) or not data_url.startswith("data:image/"):
        raise ValueError("expected an image data URL")
    try:
        _, encoded = data_url.split(",", 1)
        raw = base64.b64decode(encoded, validate=True)
        image = Image.open(io.BytesIO(raw))
        image.load()
    except (ValueError, OSError) as e:
        raise ValueError(f"undecodable image data URL: {e}") from e
    return image.convert("RGBA")
