"""
Preview/render parity checks.

A caption passes when the render matches the preview with SSIM >= 0.995 or
when at most 1% of pixels differ. Rasters are compared after compositing over
black so fully transparent pixels with different RGB junk compare equal.
"""

from dataclasses import dataclass

import numpy as np
from PIL import Image

from app.services import caption_raster

SSIM_THRESHOLD = 0.995
PIXEL_DIFF_THRESHOLD = 0.01
PIXEL_TOLERANCE = 8
SSIM_WINDOW = 7

# Wang et al. stabilizers for 8-bit data
_C1 = (0.01 * 255) ** 2
_C2 = (0.03 * 255) ** 2


@dataclass(frozen=True)
class ParityReport:
    ssim: float
    pixel_diff: float
    passed: bool
    width: int
    height: int

    def as_dict(self) -> dict:
        return {
            "ssim": self.ssim,
            "pixelDiff": self.pixel_diff,
            "passed": self.passed,
            "width": self.width,
            "height": self.height,
        }


def _flatten(image: Image.Image) -> np.ndarray:
    rgba = image.convert("RGBA")
    background = Image.new("RGBA", rgba.size, (0, 0, 0, 255))
    return np.asarray(Image.alpha_composite(background, rgba).convert("RGB"), dtype=np.float64)


def _luminance(rgb: np.ndarray) -> np.ndarray:
    return rgb[..., 0] * 0.299 + rgb[..., 1] * 0.587 + rgb[..., 2] * 0.114


def _box_mean(values: np.ndarray, window: int) -> np.ndarray:
    """Mean over every full `window` x `window` patch (valid region only)."""
    padded = np.pad(values, ((1, 0), (1, 0)))
    integral = padded.cumsum(axis=0).cumsum(axis=1)
    total = (
        integral[window:, window:]
        - integral[:-window, window:]
        - integral[window:, :-window]
        + integral[:-window, :-window]
    )
    return total / float(window * window)


def compute_ssim(a: Image.Image, b: Image.Image, window: int = SSIM_WINDOW) -> float:
    """Mean structural similarity of two same-size images (luminance)."""
    if a.size != b.size:
        return 0.0
    x = _luminance(_flatten(a))
    y = _luminance(_flatten(b))
    win = max(1, min(window, x.shape[0], x.shape[1]))

    mu_x = _box_mean(x, win)
    mu_y = _box_mean(y, win)
    var_x = _box_mean(x * x, win) - mu_x * mu_x
    var_y = _box_mean(y * y, win) - mu_y * mu_y
    cov = _box_mean(x * y, win) - mu_x * mu_y

    numerator = (2 * mu_x * mu_y + _C1) * (2 * cov + _C2)
    denominator = (mu_x * mu_x + mu_y * mu_y + _C1) * (var_x + var_y + _C2)
    return float(np.mean(numerator / denominator))


def pixel_diff_ratio(a: Image.Image, b: Image.Image, tolerance: int = PIXEL_TOLERANCE) -> float:
    """Share of pixels whose largest channel difference exceeds `tolerance`."""
    if a.size != b.size:
        return 1.0
    diff = np.abs(_flatten(a) - _flatten(b)).max(axis=2)
    return float(np.count_nonzero(diff > tolerance)) / float(diff.size)


def compare_rasters(
    expected: Image.Image,
    actual: Image.Image,
    ssim_threshold: float = SSIM_THRESHOLD,
    max_pixel_diff: float = PIXEL_DIFF_THRESHOLD,
) -> ParityReport:
    if expected.size != actual.size:
        return ParityReport(0.0, 1.0, False, actual.width, actual.height)
    ssim = compute_ssim(expected, actual)
    diff = pixel_diff_ratio(expected, actual)
    return ParityReport(
        ssim=round(ssim, 6),
        pixel_diff=round(diff, 6),
        passed=ssim >= ssim_threshold or diff <= max_pixel_diff,
        width=actual.width,
        height=actual.height,
    )


def verify_raster_hash(data_url: str, expected_hash: str) -> bool:
    """True when the decoded raster still has the hash the preview reported."""
    return caption_raster.raster_hash(caption_raster.decode_data_url(data_url)) == expected_hash
