from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np

from .coords import CoordinateMapper
from .types import Detection

# BGR, OpenCV order.
FILL_COLOR = (0, 0, 255)
BORDER_COLOR = (0, 255, 255)
LABEL_TEXT_COLOR = (255, 255, 255)


def format_label(det: Detection) -> str:
    return f"{det.class_name} {int(det.confidence * 100)}%"


def draw_detections(
    canvas_bgr: np.ndarray,
    detections: Sequence[Detection],
    *,
    source_size: Optional[Tuple[int, int]] = None,
    fill: bool = True,
    show_label: bool = True,
    border_thickness: int = 3,
    font_scale: float = 0.8,
    font_thickness: int = 2,
) -> np.ndarray:
    """
    Paint detections over a display canvas and return a copy.

    Detections are in source-image pixels; `source_size` (width, height) is the
    frame they were computed on. The canvas may be a different size, in which
    case boxes are scaled per axis onto it. With `fill` the regions are covered
    by opaque blocks, otherwise only outlined.
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for draw_detections(). Install with `pip install opencv-python`.") from e

    if canvas_bgr is None or not hasattr(canvas_bgr, "shape"):
        raise TypeError("canvas_bgr must be a NumPy array (BGR).")
    if canvas_bgr.ndim != 3 or canvas_bgr.shape[2] != 3:
        raise ValueError(f"Expected canvas shape (H, W, 3), got {getattr(canvas_bgr, 'shape', None)}")

    out = canvas_bgr.copy()
    h, w = out.shape[:2]
    src_w, src_h = source_size if source_size is not None else (w, h)
    mapper = CoordinateMapper(source_width=src_w, source_height=src_h, display_width=w, display_height=h)

    for det, view in zip(detections, mapper.detections_to_display(detections)):
        x1i = int(np.clip(round(view.left), 0, w - 1))
        y1i = int(np.clip(round(view.top), 0, h - 1))
        x2i = int(np.clip(round(view.right), 0, w - 1))
        y2i = int(np.clip(round(view.bottom), 0, h - 1))
        if x2i <= x1i or y2i <= y1i:
            continue

        if fill:
            cv2.rectangle(out, (x1i, y1i), (x2i, y2i), FILL_COLOR, thickness=-1)
        cv2.rectangle(out, (x1i, y1i), (x2i, y2i), BORDER_COLOR, thickness=border_thickness)

        if not show_label:
            continue

        label = format_label(det)
        (tw, th), baseline = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, font_scale, font_thickness)
        # Above the box when there is room, otherwise pushed inside it.
        y_text_top = y1i - th - baseline - 6
        if y_text_top < 0:
            y_text_top = min(y1i + 5, h - 1)

        x_text_right = min(x1i + tw + 10, w - 1)
        y_text_bottom = min(y_text_top + th + baseline + 6, h - 1)

        cv2.rectangle(out, (x1i, y_text_top), (x_text_right, y_text_bottom), FILL_COLOR, thickness=-1)
        cv2.putText(
            out,
            label,
            (min(x1i + 5, w - 1), min(y_text_top + th + 3, h - 1)),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            LABEL_TEXT_COLOR,
            thickness=font_thickness,
            lineType=cv2.LINE_AA,
        )

    return out
