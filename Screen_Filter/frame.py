from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np


@dataclass
class Frame:
    """
    One frame handed over by a frame source.

    `pixels` is (H, row_width, C) where row_width may exceed `width` when the
    source pads its rows; the padding is dropped when the frame is copied into
    a pooled buffer. `release` hands the frame's storage back to the source and
    runs at most once.
    """

    pixels: np.ndarray
    width: int
    height: int
    timestamp: float
    pixel_format: str = "BGR_888"
    release: Optional[Callable[[], None]] = None
    _closed: bool = field(default=False, init=False, repr=False)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.release is not None:
            self.release()
