import pytest

from app.services.caption_style import (
    CAPTION_DEFAULTS,
    STYLE_FIELDS,
    extract_style_only,
    is_bold,
    normalize_weight,
    resolve_style,
)


@pytest.fixture
def preview_meta():
    return {
        "rasterUrl": "data:image/png;base64,AAAA",
        "rasterHash": "abc123",
        "text": "Hello",
        "lines": ["Hello"],
        "mode": "raster",
        "ssotVersion": 3,
        "fontPx": 48,
        "color": "#ff0000",
        "placement": "bottom",
        "yPct": 0.8,
        "internalPadding": 12,
    }


class TestExtractStyleOnly:

    def test_drops_non_style_keys(self, preview_meta):
        style = extract_style_only(preview_meta)
        assert style == {
            "fontPx": 48,
            "color": "#ff0000",
            "placement": "bottom",
            "yPct": 0.8,
            "internalPadding": 12,
        }
        for forbidden in ("rasterUrl", "rasterHash", "text", "lines", "mode", "ssotVersion"):
            assert forbidden not in style

    def test_idempotent(self, preview_meta):
        once = extract_style_only(preview_meta)
        assert extract_style_only(once) == once

    def test_does_not_mutate_input(self, preview_meta):
        before = dict(preview_meta)
        style = extract_style_only(preview_meta)
        style["fontPx"] = 10
        assert preview_meta == before

    @pytest.mark.parametrize("value", [None, "fontPx", 12, ["fontPx"]])
    def test_non_mapping_gives_empty(self, value):
        assert extract_style_only(value) == {}

    def test_missing_keys_stay_missing(self):
        assert extract_style_only({"color": "red"}) == {"color": "red"}

    def test_whitelist_contents(self):
        assert len(STYLE_FIELDS) == 20
        assert "internalPaddingPx" in STYLE_FIELDS
        assert "rasterUrl" not in STYLE_FIELDS


class TestResolveStyle:

    def test_defaults(self):
        resolved = resolve_style({})
        assert resolved["fontFamily"] == "DejaVu Sans"
        assert resolved["fontPx"] == 64
        assert resolved["internalPaddingPx"] == 24
        assert resolved["wPct"] == 0.8

    def test_font_clamped_to_enforced_range(self):
        assert resolve_style({"fontPx": 200})["fontPx"] == 120
        assert resolve_style({"fontPx": 10})["fontPx"] == 32

    def test_opacity_clamped(self):
        assert resolve_style({"opacity": 3})["opacity"] == 1.0

    def test_legacy_padding_alias(self):
        resolved = resolve_style({"internalPadding": 10})
        assert resolved["internalPaddingPx"] == 10
        assert "internalPadding" not in resolved

    def test_non_numeric_value_keeps_default(self):
        assert resolve_style({"fontPx": "big"})["fontPx"] == CAPTION_DEFAULTS["fontPx"]

    def test_unknown_keys_ignored(self):
        assert "rasterUrl" not in resolve_style({"rasterUrl": "x"})

    @pytest.mark.parametrize("value,expected", [("left", "left"), (" Right ", "right"), ("justify", "center"), (3, "center")])
    def test_text_align(self, value, expected):
        assert resolve_style({"textAlign": value})["textAlign"] == expected

    def test_text_align_not_persisted(self):
        assert "textAlign" not in extract_style_only({"textAlign": "left", "color": "#fff"})


class TestWeights:

    @pytest.mark.parametrize("weight,bold", [("700", True), ("bold", True), (800, True), ("400", False), ("normal", False), (None, False)])
    def test_is_bold(self, weight, bold):
        assert is_bold(weight) is bold

    def test_normalize_weight(self):
        assert normalize_weight("800") == "700"
        assert normalize_weight("300") == "400"
