from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .types import Box, Detection


@dataclass
class NMSConfig:
    iou_threshold: float = 0.45
    # None keeps every surviving box.
    max_detections: Optional[int] = None


def iou(a: Box, b: Box) -> float:
    """
    Intersection over union of two corner-form boxes.

    Zero when either box, or their intersection, has non-positive width or height.
    """

    if a.is_degenerate or b.is_degenerate:
        return 0.0

    w = min(a.right, b.right) - max(a.left, b.left)
    h = min(a.bottom, b.bottom) - max(a.top, b.top)
    if w <= 0.0 or h <= 0.0:
        return 0.0

    inter = w * h
    union = a.width * a.height + b.width * b.height - inter
    if union <= 0.0:
        return 0.0
    return inter / union


def _iou_one_to_many(boxes: np.ndarray, i: int, others: np.ndarray) -> np.ndarray:
    x1, y1, x2, y2 = boxes[:, 0], boxes[:, 1], boxes[:, 2], boxes[:, 3]
    widths = x2 - x1
    heights = y2 - y1

    iw = np.minimum(x2[i], x2[others]) - np.maximum(x1[i], x1[others])
    ih = np.minimum(y2[i], y2[others]) - np.maximum(y1[i], y1[others])

    valid = (widths[i] > 0) & (heights[i] > 0) & (widths[others] > 0) & (heights[others] > 0)
    valid &= (iw > 0) & (ih > 0)

    inter = np.where(valid, iw * ih, 0.0)
    union = widths[i] * heights[i] + widths[others] * heights[others] - inter
    out = np.zeros(others.shape[0], dtype=np.float64)
    np.divide(inter, union, out=out, where=valid & (union > 0))
    return out


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of boxes to keep, highest score first.

    Ties in score keep their input order, so the result is deterministic.
    """

    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    if boxes.shape[0] != scores.shape[0]:
        raise ValueError(f"boxes and scores disagree: {boxes.shape[0]} vs {scores.shape[0]}")
    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    order = np.argsort(-scores, kind="stable")
    keep: List[int] = []

    while order.size > 0:
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break
        i = int(order[0])
        keep.append(i)

        rest = order[1:]
        overlap = _iou_one_to_many(boxes, i, rest)
        order = rest[overlap <= cfg.iou_threshold]

    return np.array(keep, dtype=np.int64)


def suppress(detections: Sequence[Detection], iou_threshold: float, max_detections: Optional[int] = None) -> List[Detection]:
    """
    Greedy non-max suppression over Detection values.

    Returns a subset of `detections` ordered by confidence descending. A
    candidate is dropped when its IoU with an already kept detection exceeds
    `iou_threshold`.
    """

    if not detections:
        return []

    boxes = np.array([d.box.as_xyxy() for d in detections], dtype=np.float64)
    scores = np.array([d.confidence for d in detections], dtype=np.float64)
    keep = nms(boxes, scores, NMSConfig(iou_threshold=iou_threshold, max_detections=max_detections))
    return [detections[int(i)] for i in keep]
