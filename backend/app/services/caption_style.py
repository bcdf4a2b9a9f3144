from typing import Any, Dict, Mapping

from app.services.caption_geometry import clamp, is_finite_number, normalize_text_align

# Allowed style keys. Stored caption presets depend on this list; removing a
# key drops it from every preset saved afterwards.
STYLE_FIELDS = (
    # typography
    "fontFamily",
    "fontPx",
    "weightCss",
    "fontStyle",
    "letterSpacingPx",
    "lineSpacingPx",
    # color & effects
    "color",
    "opacity",
    "strokePx",
    "strokeColor",
    "shadowBlur",
    "shadowOffsetX",
    "shadowOffsetY",
    "shadowColor",
    # placement
    "placement",
    "yPct",
    "xPct",
    "wPct",
    "internalPaddingPx",
    "internalPadding",  # legacy alias of internalPaddingPx
)

PLACEMENTS = ("top", "center", "middle", "bottom", "custom")

CAPTION_DEFAULTS: Dict[str, Any] = {
    "fontFamily": "DejaVu Sans",
    "fontPx": 64,
    "weightCss": "normal",
    "fontStyle": "normal",
    "letterSpacingPx": 0.5,
    "lineSpacingPx": 0,
    "color": "#FFFFFF",
    "opacity": 1.0,
    "strokePx": 3,
    "strokeColor": "rgba(0,0,0,0.85)",
    "shadowBlur": 0,
    "shadowOffsetX": 1,
    "shadowOffsetY": 1,
    "shadowColor": "rgba(0,0,0,0.6)",
    "textAlign": "center",
    "wPct": 0.8,
    "internalPaddingPx": 24,
}

FONT_PX_LIMITS = (8, 400)
ENFORCED_FONT_MIN = 32
ENFORCED_FONT_MAX = 120


def extract_style_only(obj: Any) -> Dict[str, Any]:
    """
    Copy only the whitelisted style keys out of `obj`.

    Raster URLs, hashes, text, line breaks and mode flags never survive.
    Missing keys stay missing; `obj` is not modified.
    """
    if not isinstance(obj, Mapping):
        return {}
    return {key: obj[key] for key in STYLE_FIELDS if key in obj}


def resolve_style(style: Any) -> Dict[str, Any]:
    """Defaults overlaid with the whitelisted fields of `style`, numerically sane."""
    resolved = dict(CAPTION_DEFAULTS)
    overrides = extract_style_only(style)

    if "internalPaddingPx" not in overrides and "internalPadding" in overrides:
        overrides["internalPaddingPx"] = overrides["internalPadding"]
    overrides.pop("internalPadding", None)

    for key, value in overrides.items():
        if value is None:
            continue
        default = CAPTION_DEFAULTS.get(key)
        if is_finite_number(default) and not is_finite_number(value):
            # numeric field with a non-numeric value keeps its default
            continue
        resolved[key] = value

    resolved["fontPx"] = clamp(float(resolved["fontPx"]), ENFORCED_FONT_MIN, ENFORCED_FONT_MAX)
    resolved["opacity"] = clamp(float(resolved["opacity"]), 0.0, 1.0)
    resolved["lineSpacingPx"] = max(0.0, float(resolved["lineSpacingPx"]))
    resolved["strokePx"] = max(0.0, float(resolved["strokePx"]))
    resolved["shadowBlur"] = max(0.0, float(resolved["shadowBlur"]))
    resolved["wPct"] = clamp(float(resolved["wPct"]), 0.05, 1.0)
    resolved["internalPaddingPx"] = max(0.0, float(resolved["internalPaddingPx"]))

    # draw-time only, never part of a stored preset
    align = normalize_text_align(style.get("textAlign")) if isinstance(style, Mapping) else None
    if align:
        resolved["textAlign"] = align
    return resolved


def is_bold(weight_css: Any) -> bool:
    text = str(weight_css or "").strip().lower()
    if text in ("bold", "bolder"):
        return True
    try:
        return int(text) >= 600
    except ValueError:
        return False


def normalize_weight(weight_css: Any) -> str:
    return "700" if is_bold(weight_css) else "400"
