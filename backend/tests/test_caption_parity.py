import pytest
from PIL import Image

from app.services.caption_parity import (
    compare_rasters,
    compute_ssim,
    pixel_diff_ratio,
    verify_raster_hash,
)
from app.services.caption_raster import encode_png_data_url, raster_hash


class TestParity:

    def test_identical_images_pass(self, caption_image):
        report = compare_rasters(caption_image, caption_image.copy())
        assert report.passed
        assert report.ssim == pytest.approx(1.0)
        assert report.pixel_diff == 0.0

    def test_different_images_fail(self, caption_image):
        blank = Image.new("RGBA", caption_image.size, (0, 0, 0, 0))
        report = compare_rasters(caption_image, blank)
        assert not report.passed
        assert report.ssim < 0.995
        assert report.pixel_diff > 0.01

    def test_size_mismatch_fails(self, caption_image):
        other = caption_image.resize((60, 30))
        report = compare_rasters(caption_image, other)
        assert not report.passed
        assert report.ssim == 0.0
        assert compute_ssim(caption_image, other) == 0.0
        assert pixel_diff_ratio(caption_image, other) == 1.0

    def test_transparent_junk_compares_equal(self):
        a = Image.new("RGBA", (20, 20), (255, 0, 0, 0))
        b = Image.new("RGBA", (20, 20), (0, 255, 0, 0))
        assert pixel_diff_ratio(a, b) == 0.0

    def test_single_pixel_change_within_tolerance(self, caption_image):
        changed = caption_image.copy()
        changed.putpixel((0, 0), (255, 255, 255, 255))
        report = compare_rasters(caption_image, changed)
        assert report.passed
        assert 0 < report.pixel_diff <= 0.01

    def test_as_dict(self, caption_image):
        data = compare_rasters(caption_image, caption_image).as_dict()
        assert set(data) == {"ssim", "pixelDiff", "passed", "width", "height"}
        assert (data["width"], data["height"]) == (120, 60)

    def test_verify_raster_hash(self, caption_image):
        url = encode_png_data_url(caption_image)
        assert verify_raster_hash(url, raster_hash(caption_image))
        assert not verify_raster_hash(url, "0" * 16)


class TestParityRoute:

    def test_parity_endpoint(self, client, caption_image):
        url = encode_png_data_url(caption_image)
        res = client.post("/api/caption/parity", json={"expectedUrl": url, "actualUrl": url})
        assert res.status_code == 200
        body = res.json()
        assert body["ok"] is True
        assert body["data"]["passed"] is True
        assert body["data"]["hashMatch"] is None

    def test_expected_hash_is_checked(self, client, caption_image):
        url = encode_png_data_url(caption_image)
        good = {"expectedUrl": url, "actualUrl": url, "expectedHash": raster_hash(caption_image)}
        assert client.post("/api/caption/parity", json=good).json()["data"]["hashMatch"] is True

        bad = {**good, "expectedHash": "0" * 16}
        data = client.post("/api/caption/parity", json=bad).json()["data"]
        assert data["hashMatch"] is False
        assert data["passed"] is True

    def test_undecodable_image_is_400(self, client, caption_image):
        url = encode_png_data_url(caption_image)
        res = client.post("/api/caption/parity", json={"expectedUrl": url, "actualUrl": "nope"})
        assert res.status_code == 400
        assert res.json()["ok"] is False
