PRESETS_URL = "/api/caption/presets"


class TestCaptionPresets:

    def test_create_strips_non_style_keys(self, client):
        res = client.post(
            PRESETS_URL,
            json={
                "name": "Bold yellow",
                "style": {
                    "fontPx": 72,
                    "color": "#ffcc00",
                    "weightCss": "700",
                    "rasterUrl": "data:image/png;base64,AAAA",
                    "text": "old caption",
                    "lines": ["old caption"],
                },
            },
        )
        assert res.status_code == 200, res.text
        body = res.json()
        assert body["ok"] is True
        preset = body["data"]
        assert preset["name"] == "Bold yellow"
        assert preset["style"] == {"fontPx": 72, "color": "#ffcc00", "weightCss": "700"}

    def test_get_and_list(self, client):
        created = client.post(PRESETS_URL, json={"name": "Top", "style": {"placement": "top"}}).json()["data"]

        fetched = client.get(f"{PRESETS_URL}/{created['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["data"]["style"] == {"placement": "top"}

        listed = client.get(PRESETS_URL).json()["data"]
        assert created["id"] in [p["id"] for p in listed]

    def test_unknown_preset_is_404(self, client):
        res = client.get(f"{PRESETS_URL}/does-not-exist")
        assert res.status_code == 404
        assert res.json() == {"ok": False, "error": "NOT_FOUND", "detail": "Preset not found"}

    def test_out_of_range_style_is_400(self, client):
        res = client.post(PRESETS_URL, json={"name": "Huge", "style": {"fontPx": 4000}})
        assert res.status_code == 400
        assert res.json()["ok"] is False

    def test_missing_name_is_400(self, client):
        res = client.post(PRESETS_URL, json={"style": {}})
        assert res.status_code == 400
