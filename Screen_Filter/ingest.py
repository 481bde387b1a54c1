from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import cv2

from .frame import Frame


@dataclass(frozen=True)
class CaptureInfo:
    fps: Optional[float]
    width: Optional[int]
    height: Optional[int]
    frame_count: Optional[int] = None


def open_capture(*, video: Optional[str] = None, webcam: Optional[int] = None, rtsp: Optional[str] = None) -> cv2.VideoCapture:
    sources = [video is not None, webcam is not None, rtsp is not None]
    if sum(bool(s) for s in sources) != 1:
        raise ValueError("Exactly one of video/webcam/rtsp must be provided.")

    if video is not None:
        cap = cv2.VideoCapture(video)
    elif rtsp is not None:
        cap = cv2.VideoCapture(rtsp)
    else:
        cap = cv2.VideoCapture(int(webcam))

    if not cap.isOpened():
        raise RuntimeError("Failed to open video source.")
    return cap


def get_capture_info(cap: cv2.VideoCapture) -> CaptureInfo:
    fps = cap.get(cv2.CAP_PROP_FPS)
    if fps is None or fps <= 0:
        fps_val = None
    else:
        fps_val = float(fps)

    w = cap.get(cv2.CAP_PROP_FRAME_WIDTH)
    h = cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
    w_val = int(w) if w and w > 0 else None
    h_val = int(h) if h and h > 0 else None

    n = cap.get(cv2.CAP_PROP_FRAME_COUNT)
    n_val = int(n) if n and n > 0 else None

    return CaptureInfo(fps=fps_val, width=w_val, height=h_val, frame_count=n_val)


def iter_frames(
    cap: cv2.VideoCapture,
    *,
    clock: Callable[[], float] = time.monotonic,
    max_frames: Optional[int] = None,
) -> Iterator[Frame]:
    """
    Yield frames from an open capture until it runs dry.

    OpenCV hands out a fresh array per read, so releasing a frame only drops
    the reference; the capture itself is released by the caller.
    """

    read = 0
    while max_frames is None or read < max_frames:
        ok, image = cap.read()
        if not ok or image is None:
            return
        read += 1
        h, w = image.shape[:2]
        yield Frame(pixels=image, width=int(w), height=int(h), timestamp=float(clock()), pixel_format="BGR_888")
