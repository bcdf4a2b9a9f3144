import pytest

from app.services.caption_raster import decode_data_url, raster_hash

PREVIEW_URL = "/api/caption/preview"


@pytest.fixture
def client_measured_payload():
    return {
        "ssotVersion": 3,
        "mode": "raster",
        "text": "Hello world",
        "lines": ["Hello world"],
        "rasterW": 600,
        "rasterH": 140,
        "yPx_png": 1500,
        "totalTextH": 64,
        "rasterPadding": 24,
        "fontPx": 64,
        "lineSpacingPx": 0,
        "color": "#ffffff",
        "rasterUrl": "data:image/png;base64,ignored",
    }


def _meta(res):
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["ok"] is True
    return body["data"]["meta"]


class TestServerMeasured:

    def test_bottom_placement(self, client):
        meta = _meta(client.post(PREVIEW_URL, json={"measure": "server", "text": "Hello world", "placement": "bottom"}))
        assert meta["frameW"] == 1080 and meta["frameH"] == 1920
        assert meta["rasterW"] == 864
        assert meta["fontPx"] == 64
        assert meta["lines"] == ["Hello world"]
        assert meta["totalTextH"] == 64
        # 64 text + 2*24 padding + 8 descender + 0 blur + 1 offset
        assert meta["rasterH"] == 121
        assert meta["yPx_png"] == 1920 - 121 - 36
        assert meta["xPx_png"] == (1080 - 864) // 2
        assert meta["yPxFirstLine"] == meta["yPx_png"] + 24

    def test_raster_matches_reported_geometry(self, client):
        meta = _meta(client.post(PREVIEW_URL, json={"measure": "server", "text": "Hi there", "placement": "top"}))
        image = decode_data_url(meta["rasterUrl"])
        assert image.size == (meta["rasterW"], meta["rasterH"])
        assert raster_hash(image) == meta["rasterHash"]
        assert meta["yPx_png"] == 24

    def test_same_input_same_hash(self, client):
        body = {"measure": "server", "text": "Stable", "placement": "center", "style": {"fontPx": 72}}
        first = _meta(client.post(PREVIEW_URL, json=body))
        second = _meta(client.post(PREVIEW_URL, json=body))
        assert first["rasterHash"] == second["rasterHash"]
        assert first["fontPx"] == 72

    def test_newlines_are_kept(self, client):
        meta = _meta(client.post(PREVIEW_URL, json={"measure": "server", "text": "one\ntwo", "placement": "bottom"}))
        assert meta["lines"] == ["one", "two"]
        assert meta["totalTextH"] == 128

    def test_y_pct_without_placement(self, client):
        meta = _meta(client.post(PREVIEW_URL, json={"measure": "server", "text": "Hello", "yPct": 0.5}))
        assert meta["yPx_png"] == 960

    def test_missing_placement_and_y_pct_is_400(self, client):
        res = client.post(PREVIEW_URL, json={"measure": "server", "text": "Hello"})
        assert res.status_code == 400
        body = res.json()
        assert body["ok"] is False
        assert body["error"] == "INVALID_INPUT"
        assert "placement" in body["detail"]

    def test_custom_placement_needs_y_pct(self, client):
        res = client.post(PREVIEW_URL, json={"measure": "server", "text": "Hello", "placement": "custom"})
        assert res.status_code == 400
        assert res.json()["ok"] is False

    def test_unknown_placement_is_400(self, client):
        res = client.post(PREVIEW_URL, json={"measure": "server", "text": "Hello", "placement": "diagonal"})
        assert res.status_code == 400

    def test_text_align_changes_raster(self, client):
        body = {"measure": "server", "text": "Hi", "placement": "bottom"}
        metas = {
            align: _meta(client.post(PREVIEW_URL, json={**body, "textAlign": align}))
            for align in ("left", "center", "right")
        }
        assert len({m["rasterHash"] for m in metas.values()}) == 3
        assert metas["left"]["textAlign"] == "left"
        assert metas["left"]["xExpr_png"] == "0"
        assert metas["right"]["xExpr_png"] == "(W-overlay_w)"
        assert metas["center"]["xExpr_png"] == "(W-overlay_w)/2"

    def test_nested_style_align(self, client):
        body = {"measure": "server", "text": "Hi", "placement": "top", "textAlign": "center"}
        meta = _meta(client.post(PREVIEW_URL, json={**body, "style": {"textAlign": "left"}}))
        assert meta["textAlign"] == "left"

    def test_empty_text_is_400(self, client):
        res = client.post(PREVIEW_URL, json={"measure": "server", "text": "   ", "placement": "top"})
        assert res.status_code == 400


class TestMobileHeader:

    def test_mobile_without_measure_is_server_measured(self, client):
        res = client.post(PREVIEW_URL, json={"text": "Hello"}, headers={"x-client": "mobile"})
        assert res.status_code == 400
        assert res.json()["ok"] is False

    def test_mobile_with_placement(self, client):
        meta = _meta(client.post(PREVIEW_URL, json={"text": "Hello", "placement": "middle"}, headers={"x-client": "mobile"}))
        assert meta["yPx_png"] == (1920 - meta["rasterH"] + 1) // 2


class TestClientMeasured:

    def test_geometry_is_trusted(self, client, client_measured_payload):
        meta = _meta(client.post(PREVIEW_URL, json=client_measured_payload))
        assert meta["rasterW"] == 600
        assert meta["rasterH"] == 140
        assert meta["yPx_png"] == 1500
        assert meta["xPx_png"] == 240
        assert meta["totalTextH"] == 64
        assert meta["lines"] == ["Hello world"]
        assert meta["yPxFirstLine"] == 1524
        assert decode_data_url(meta["rasterUrl"]).size == (600, 140)

    def test_explicit_x(self, client, client_measured_payload):
        client_measured_payload["xPx_png"] = 100
        assert _meta(client.post(PREVIEW_URL, json=client_measured_payload))["xPx_png"] == 100

    def test_position_clamped_into_frame(self, client, client_measured_payload):
        client_measured_payload.update(yPx_png=1900, xPx_png=-50)
        meta = _meta(client.post(PREVIEW_URL, json=client_measured_payload))
        assert meta["yPx_png"] == 1920 - 140
        assert meta["xPx_png"] == 0
        assert meta["yPxFirstLine"] == 1920 - 140 + 24

        client_measured_payload.update(yPx_png=-30, xPx_png=1000)
        meta = _meta(client.post(PREVIEW_URL, json=client_measured_payload))
        assert meta["yPx_png"] == 0
        assert meta["xPx_png"] == 1080 - 600

    def test_text_align_changes_raster(self, client, client_measured_payload):
        left = _meta(client.post(PREVIEW_URL, json={**client_measured_payload, "textAlign": "left"}))
        center = _meta(client.post(PREVIEW_URL, json=client_measured_payload))
        assert left["rasterHash"] != center["rasterHash"]
        assert center["textAlign"] == "center"

    def test_axis_padding(self, client, client_measured_payload):
        client_measured_payload.update(textAlign="left", rasterPaddingX=60, rasterPaddingY=30)
        padded = _meta(client.post(PREVIEW_URL, json=client_measured_payload))
        assert (padded["rasterPaddingX"], padded["rasterPaddingY"]) == (60, 30)
        assert padded["rasterPadding"] == 24

        client_measured_payload.update(rasterPaddingX=24, rasterPaddingY=24)
        plain = _meta(client.post(PREVIEW_URL, json=client_measured_payload))
        assert padded["rasterHash"] != plain["rasterHash"]

    @pytest.mark.parametrize("field", ["rasterW", "rasterH", "yPx_png", "totalTextH", "lines"])
    def test_missing_field_is_400(self, client, client_measured_payload, field):
        del client_measured_payload[field]
        res = client.post(PREVIEW_URL, json=client_measured_payload)
        assert res.status_code == 400
        assert field in res.json()["detail"]

    def test_full_frame_raster_rejected(self, client, client_measured_payload):
        client_measured_payload["rasterH"] = 1920
        res = client.post(PREVIEW_URL, json=client_measured_payload)
        assert res.status_code == 400
        assert res.json()["ok"] is False

    def test_invalid_frame_is_400(self, client, client_measured_payload):
        client_measured_payload["frameW"] = 0
        res = client.post(PREVIEW_URL, json=client_measured_payload)
        assert res.status_code == 400
        assert res.json()["ok"] is False


class TestAuth:

    def test_token_required_when_enabled(self, client, require_auth):
        res = client.post(PREVIEW_URL, json={"measure": "server", "text": "Hello", "placement": "top"})
        assert res.status_code == 401
        assert res.json()["error"] == "UNAUTHENTICATED"

    def test_bearer_token_accepted(self, client, require_auth):
        res = client.post(
            PREVIEW_URL,
            json={"measure": "server", "text": "Hello", "placement": "top"},
            headers={"Authorization": "Bearer test-token"},
        )
        assert res.status_code == 200
