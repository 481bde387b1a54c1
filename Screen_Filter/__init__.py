"""
Streaming layer built on top of `guard_kit`.

The detection runtime stays inside `guard_kit/`; this package focuses on
- frame hand-off and pooled pixel buffers
- rate-limited, single-flight scheduling of detection passes
- pipeline/run configuration
- the runner (capture loop wired to the scheduler)
"""

from __future__ import annotations

from typing import Any

from .config import PipelineConfig, load_pipeline_config

# Optional dependency boundary:
# `ingest` depends on OpenCV (`cv2`) and should not break imports of the scheduling
# modules (tests can run without cv2 installed).
try:
    from .ingest import CaptureInfo, get_capture_info, iter_frames, open_capture
except ModuleNotFoundError as exc:
    if getattr(exc, "name", None) != "cv2":
        raise

    CaptureInfo = Any  # type: ignore[misc,assignment]

    def open_capture(*args: Any, **kwargs: Any) -> Any:  # type: ignore[misc]
        raise RuntimeError("OpenCV (cv2) is not installed. Install opencv-python to use capture ingestion.")

    def get_capture_info(*args: Any, **kwargs: Any) -> Any:  # type: ignore[misc]
        raise RuntimeError("OpenCV (cv2) is not installed. Install opencv-python to use capture ingestion.")

    def iter_frames(*args: Any, **kwargs: Any) -> Any:  # type: ignore[misc]
        raise RuntimeError("OpenCV (cv2) is not installed. Install opencv-python to use capture ingestion.")
from .buffer_pool import BufferPool, FrameBuffer
from .frame import Frame
from .scheduler import DetectionResult, FrameScheduler, SchedulerStats

__all__ = [
    "CaptureInfo",
    "get_capture_info",
    "iter_frames",
    "open_capture",
    "PipelineConfig",
    "load_pipeline_config",
    "BufferPool",
    "FrameBuffer",
    "Frame",
    "DetectionResult",
    "FrameScheduler",
    "SchedulerStats",
]
