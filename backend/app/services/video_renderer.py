import os
import subprocess
from typing import Any, Dict, List, Mapping, Optional, Tuple

from PIL import Image
from sqlalchemy.orm import Session

from app.models.job import RenderJob, JobStatusEnum
from app.core.config import get_settings
from app.core.logging import get_logger
from app.services.caption_geometry import (
    X_EXPR_BY_ALIGN,
    FrameDimensions,
    is_finite_number,
    js_round,
    x_expr_for_align,
)
from app.services.caption_raster import raster_hash

settings = get_settings()
logger = get_logger(__name__)


class CaptionRenderError(Exception):
    """Caption cannot be composited as previewed."""


def configured_frame() -> FrameDimensions:
    return FrameDimensions(W=settings.FRAME_W, H=settings.FRAME_H)


def check_geometry_lock(caption: Mapping[str, Any], frame: FrameDimensions) -> None:
    """
    The raster was laid out for one frame size; compositing it on another
    would move every line. Reject instead of rescaling.
    """
    meta_w, meta_h = caption.get("frameW"), caption.get("frameH")
    if not is_finite_number(meta_w) or not is_finite_number(meta_h):
        raise CaptionRenderError("caption meta is missing frameW/frameH")
    if int(meta_w) != frame.W or int(meta_h) != frame.H:
        raise CaptionRenderError(
            f"geometry lock: caption laid out for {int(meta_w)}x{int(meta_h)}, "
            f"renderer frame is {frame.W}x{frame.H}"
        )
    for key in ("rasterW", "rasterH", "yPx_png"):
        if not is_finite_number(caption.get(key)):
            raise CaptionRenderError(f"caption meta is missing {key}")
    if caption["rasterW"] > frame.W or caption["rasterH"] >= frame.H:
        raise CaptionRenderError("caption raster does not fit the frame")


def verify_raster_file(path: str, expected_hash: Optional[str]) -> None:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Caption raster not found: {path}")
    with Image.open(path) as image:
        actual = raster_hash(image)
    if expected_hash and actual != expected_hash:
        raise CaptionRenderError(f"raster hash mismatch: expected {expected_hash}, got {actual}")


def get_video_duration_seconds(input_path: str) -> float | None:
    """Use ffprobe to get input video duration in seconds."""
    try:
        proc = subprocess.run(
            [
                "ffprobe",
                "-v",
                "error",
                "-show_entries",
                "format=duration",
                "-of",
                "default=noprint_wrappers=1:nokey=1",
                input_path,
            ],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as e:
        logger.warning("ffprobe unavailable: %s", e)
        return None
    if proc.returncode != 0:
        return None

    out = proc.stdout.decode("utf-8", errors="ignore").strip()
    # ffprobe may print N/A or nothing
    try:
        return float(out)
    except (TypeError, ValueError):
        return None


def build_filter_complex(caption: Mapping[str, Any], frame: FrameDimensions) -> Tuple[str, str]:
    """
    ffmpeg graph for one caption raster (input 1) over the video (input 0):

      [0:v] cover-scale + center-crop to the frame -> [base]
      [base][1:v] overlay at (xPx_png, yPx_png)     -> [vout]

    Without xPx_png, x comes from xExpr_png (one of the alignment
    expressions) or from textAlign, centered by default.
    Returns (filter_complex, final_label).
    """
    x_px = caption.get("xPx_png")
    if is_finite_number(x_px):
        x_expr = str(js_round(x_px))
    else:
        x_expr = str(caption.get("xExpr_png") or "").replace(" ", "")
        if x_expr not in X_EXPR_BY_ALIGN.values():
            x_expr = x_expr_for_align(caption.get("textAlign"))
    y_expr = str(js_round(caption["yPx_png"]))

    chains = [
        f"[0:v]scale={frame.W}:{frame.H}:force_original_aspect_ratio=increase,"
        f"crop={frame.W}:{frame.H},setsar=1[base]",
        f"[base][1:v]overlay=x={x_expr}:y={y_expr}:format=auto[vout]",
    ]
    return ";".join(chains), "[vout]"


def build_ffmpeg_command(
    input_path: str,
    raster_path: str,
    output_path: str,
    caption: Mapping[str, Any],
    frame: FrameDimensions,
) -> List[str]:
    filter_complex, final_label = build_filter_complex(caption, frame)
    return [
        "ffmpeg",
        "-y",
        "-i",
        input_path,
        "-i",
        raster_path,
        "-filter_complex",
        filter_complex,
        "-map",
        final_label,
        "-map",
        "0:a?",
        "-c:v",
        "libx264",
        "-pix_fmt",
        "yuv420p",
        "-c:a",
        "aac",
        "-progress",
        "pipe:2",   # progress key=value lines to stderr (FD 2)
        "-nostats",
        "-v",
        "error",
        output_path,
    ]


def parse_progress_line(line: str, duration: Optional[float]) -> Optional[float]:
    """
    Percentage from one `-progress` line, capped at 99 until ffmpeg exits.

    ffmpeg emits out_time_ms=<microseconds>, out_time=..., progress=continue|end.
    """
    if not line.startswith("out_time_ms=") or not duration or duration <= 0:
        return None
    raw_val = line.split("=", 1)[1].strip()
    # out_time_ms=N/A happens on the first lines
    try:
        us = int(raw_val)
    except ValueError:
        return None
    return min(99.0, (us / 1_000_000.0 / duration) * 100.0)


def render_job(db: Session, job_id: str) -> None:
    """
    Main function called in the thread pool to process a job.
    Uses ffmpeg -progress pipe:2 and updates job.progress (0-100).
    """
    job: RenderJob | None = db.query(RenderJob).filter(RenderJob.id == job_id).first()
    if job is None:
        logger.warning("Render job %s vanished before processing", job_id)
        return

    job.status = JobStatusEnum.processing
    job.message = "Processing with ffmpeg"
    job.progress = 1.0
    db.commit()

    caption: Dict[str, Any] = job.caption or {}
    frame = configured_frame()
    output_path = os.path.join(settings.OUTPUT_DIR, f"{job.id}_output.mp4")

    try:
        check_geometry_lock(caption, frame)
        verify_raster_file(job.raster_path, job.raster_hash)

        cmd = build_ffmpeg_command(job.input_path, job.raster_path, output_path, caption, frame)
        duration = get_video_duration_seconds(job.input_path)
        logger.info("Job %s: ffmpeg %s", job.id, " ".join(cmd))

        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,      # -progress pipe:2 writes here
            text=True,
            bufsize=1,
        )

        errors: List[str] = []
        if proc.stderr is not None:
            for line in proc.stderr:
                line = line.strip()
                pct = parse_progress_line(line, duration)
                if pct is not None:
                    logger.debug("Job %s progress %.1f%%", job.id, pct)
                    job.progress = pct
                    db.commit()
                elif line and "=" not in line:
                    errors.append(line)

        proc.wait()

        if proc.returncode != 0:
            logger.error("Job %s: ffmpeg exited %s: %s", job.id, proc.returncode, " | ".join(errors[-5:]))
            job.status = JobStatusEnum.error
            job.message = "FFmpeg failed"
        else:
            job.status = JobStatusEnum.done
            job.message = "Rendering complete"
            job.output_path = output_path
            job.progress = 100.0
            logger.info("Job %s done: %s", job.id, output_path)

        db.commit()

    except (CaptionRenderError, FileNotFoundError) as e:
        logger.warning("Job %s rejected: %s", job.id, e)
        job.status = JobStatusEnum.error
        job.message = str(e)
        db.commit()
    except Exception as e:
        logger.exception("Job %s crashed", job.id)
        job.status = JobStatusEnum.error
        job.message = f"Exception: {e}"
        db.commit()
