from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from guard_kit.errors import BufferAcquisitionFailure, FrameConversionFailure
from guard_kit.preprocess import PIXEL_FORMATS, channels_for

from .frame import Frame

logger = logging.getLogger(__name__)

Allocator = Callable[[Tuple[int, int, int]], np.ndarray]


def _default_allocator(shape: Tuple[int, int, int]) -> np.ndarray:
    return np.empty(shape, dtype=np.uint8)


@dataclass(eq=False)
class FrameBuffer:
    """
    Pooled (H, W, C) uint8 pixel buffer. Owned by the BufferPool; callers may
    write into `data` while they hold it but never keep it past the pass.
    """

    width: int
    height: int
    pixel_format: str
    data: Optional[np.ndarray]

    @property
    def released(self) -> bool:
        return self.data is None

    def matches(self, width: int, height: int, pixel_format: str) -> bool:
        return (self.width, self.height, self.pixel_format) == (width, height, pixel_format)

    def release(self) -> None:
        self.data = None


class BufferPool:
    """
    Keeps one reusable buffer per pixel format.

    Asking again for the same (width, height) returns the same buffer; a new
    size releases the cached buffer and allocates a replacement.
    """

    def __init__(self, allocator: Allocator = _default_allocator):
        self._allocator = allocator
        self._buffers: Dict[str, FrameBuffer] = {}
        self._lock = threading.Lock()
        self.allocations = 0
        self.releases = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffers)

    def acquire(self, width: int, height: int, pixel_format: str = "RGBA_8888") -> FrameBuffer:
        if width <= 0 or height <= 0:
            raise BufferAcquisitionFailure(f"Cannot allocate a {width}x{height} buffer")
        try:
            channels = channels_for(pixel_format)
        except ValueError as exc:
            raise BufferAcquisitionFailure(str(exc)) from exc

        with self._lock:
            cached = self._buffers.get(pixel_format)
            if cached is not None and not cached.released and cached.matches(width, height, pixel_format):
                return cached

            if cached is not None:
                self._release_locked(pixel_format, cached)

            try:
                data = self._allocator((height, width, channels))
            except (MemoryError, ValueError) as exc:
                raise BufferAcquisitionFailure(f"Could not allocate {width}x{height} {pixel_format} buffer: {exc}") from exc

            buf = FrameBuffer(width=width, height=height, pixel_format=pixel_format, data=data)
            self._buffers[pixel_format] = buf
            self.allocations += 1
            logger.debug("Allocated %dx%d %s frame buffer", width, height, pixel_format)
            return buf

    def copy_frame(self, frame: Frame) -> FrameBuffer:
        """
        Copy a frame's visible pixels (row padding dropped) into a pooled buffer.
        """

        src = np.asarray(frame.pixels)
        if frame.pixel_format not in PIXEL_FORMATS:
            raise FrameConversionFailure(f"Unsupported pixel format {frame.pixel_format!r}")
        channels = PIXEL_FORMATS[frame.pixel_format]
        if src.ndim != 3 or src.shape[2] != channels:
            raise FrameConversionFailure(
                f"Expected pixels shaped (H, W, {channels}) for {frame.pixel_format}, got {src.shape}"
            )
        if src.shape[0] < frame.height or src.shape[1] < frame.width:
            raise FrameConversionFailure(
                f"Pixel data {src.shape[1]}x{src.shape[0]} is smaller than the frame {frame.width}x{frame.height}"
            )

        buf = self.acquire(frame.width, frame.height, frame.pixel_format)
        try:
            np.copyto(buf.data, src[: frame.height, : frame.width])
        except (TypeError, ValueError) as exc:
            raise FrameConversionFailure(f"Could not copy frame pixels: {exc}") from exc
        return buf

    def release_all(self) -> None:
        with self._lock:
            for pixel_format, buf in list(self._buffers.items()):
                self._release_locked(pixel_format, buf)

    def _release_locked(self, pixel_format: str, buf: FrameBuffer) -> None:
        if not buf.released:
            buf.release()
            self.releases += 1
            logger.debug("Released %dx%d %s frame buffer", buf.width, buf.height, pixel_format)
        self._buffers.pop(pixel_format, None)
