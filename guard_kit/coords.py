"""
Conversions between the coordinate spaces a detection passes through.

normalized [0, 1] -> model input pixels (S x S) -> source image pixels (W x H)
-> display surface pixels (view W x view H).

Detections are kept in source-image pixels; display conversion happens only
where something is drawn. Display mapping scales each axis independently, so a
source and a display with different aspect ratios stretch the boxes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .types import Box, Detection


def axis_scale(target: float, source: float) -> float:
    if source <= 0:
        return 1.0
    return float(target) / float(source)


def display_scale(source_w: float, source_h: float, display_w: float, display_h: float) -> Tuple[float, float]:
    return axis_scale(display_w, source_w), axis_scale(display_h, source_h)


def model_scale(source_w: float, source_h: float, model_input_size: int) -> Tuple[float, float]:
    """
    Factors mapping model-input pixels onto source-image pixels.
    """

    if model_input_size <= 0:
        raise ValueError("model_input_size must be > 0")
    return float(source_w) / float(model_input_size), float(source_h) / float(model_input_size)


def to_display(box: Box, source_w: float, source_h: float, display_w: float, display_h: float) -> Box:
    sx, sy = display_scale(source_w, source_h, display_w, display_h)
    return Box(left=box.left * sx, top=box.top * sy, right=box.right * sx, bottom=box.bottom * sy)


def clip_box(box: Box, width: float, height: float) -> Box:
    """
    Clamp a box to [0, width] x [0, height]. An inverted box collapses to zero area.
    """

    w = max(0.0, float(width))
    h = max(0.0, float(height))
    left = min(max(box.left, 0.0), w)
    top = min(max(box.top, 0.0), h)
    right = min(max(box.right, left), w)
    bottom = min(max(box.bottom, top), h)
    return Box(left=left, top=top, right=right, bottom=bottom)


def clip_detection(det: Detection, width: float, height: float) -> Detection:
    """
    Return `det` unchanged when it already lies inside the image, otherwise a
    copy rebuilt from its clipped corners.
    """

    clipped = clip_box(det.box, width, height)
    if clipped == det.box:
        return det
    return Detection.from_corners(
        clipped.left,
        clipped.top,
        clipped.right,
        clipped.bottom,
        confidence=det.confidence,
        class_id=det.class_id,
        class_name=det.class_name,
    )


@dataclass(frozen=True)
class CoordinateMapper:
    """
    Source-image to display-surface mapping for one (source, display) size pair.
    """

    source_width: int
    source_height: int
    display_width: int
    display_height: int

    @property
    def scale(self) -> Tuple[float, float]:
        return display_scale(self.source_width, self.source_height, self.display_width, self.display_height)

    def box_to_display(self, box: Box) -> Box:
        return to_display(box, self.source_width, self.source_height, self.display_width, self.display_height)

    def detections_to_display(self, detections: Sequence[Detection]) -> List[Box]:
        return [self.box_to_display(d.box) for d in detections]
