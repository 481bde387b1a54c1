from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .coords import clip_detection, model_scale
from .errors import MalformedTensor
from .types import Detection, TensorLayout

logger = logging.getLogger(__name__)

# x, y, w, h, confidence
FEATURE_COUNT = 5
CONFIDENCE_INDEX = 4


def _squeeze_batch(shape: Sequence[int]) -> Tuple[int, ...]:
    dims = tuple(int(d) for d in shape)
    if len(dims) == 3:
        if dims[0] != 1:
            raise MalformedTensor(f"Batch > 1 is not supported (got shape {dims}). Pass one image at a time.")
        dims = dims[1:]
    if len(dims) != 2:
        raise MalformedTensor(f"Expected a 2D detection output (optionally with batch 1), got shape {dims}")
    return dims


def infer_layout(shape: Sequence[int]) -> TensorLayout:
    """
    Pick the tensor layout from a declared output shape.

    - (5, N) with N > 5 -> FEATURE_MAJOR (one row per feature)
    - (N, K) with K >= 5 -> ROW_MAJOR (confidence in column 4)

    A leading batch axis of size 1 is ignored.
    """

    rows, cols = _squeeze_batch(shape)
    if rows == FEATURE_COUNT and cols > FEATURE_COUNT:
        return TensorLayout.FEATURE_MAJOR
    if cols >= FEATURE_COUNT:
        return TensorLayout.ROW_MAJOR
    raise MalformedTensor(f"Output shape {tuple(shape)} does not carry {FEATURE_COUNT} features (x, y, w, h, conf)")


class TensorDecoder:
    """
    Turns one raw output tensor into candidate detections in source-image pixels.

    Geometry is read per candidate as either normalized fractions of the source
    image (all four values <= 1.0) or pixels of the square model input, which
    are rescaled to the source image. The check is made per candidate, so a
    tensor mixing both conventions decodes each row on its own terms.
    """

    def __init__(self, model_input_size: int, class_id: int = 0, class_name: str = "not_safe"):
        if model_input_size <= 0:
            raise ValueError("model_input_size must be > 0")
        self.model_input_size = int(model_input_size)
        self.class_id = int(class_id)
        self.class_name = class_name
        self._layout: Optional[TensorLayout] = None
        self._configured_shape: Optional[Tuple[int, int]] = None

    @property
    def layout(self) -> Optional[TensorLayout]:
        return self._layout

    def configure(self, output_shape: Sequence[int]) -> TensorLayout:
        """
        Fix the layout from the model's declared output shape. Called once per model.
        """

        layout = infer_layout(output_shape)
        self._layout = layout
        self._configured_shape = _squeeze_batch(output_shape)
        logger.info("Detection output shape %s decoded as %s", tuple(output_shape), layout.value)
        return layout

    def decode(
        self,
        tensor: np.ndarray,
        layout: Optional[TensorLayout] = None,
        source_width: int = 0,
        source_height: int = 0,
        confidence_threshold: float = 0.0,
    ) -> List[Detection]:
        """
        Decode a single-image output tensor. Returned detections are unordered
        and not yet suppressed.

        Args:
            tensor: raw model output, (N, K) or (5, N), optionally with batch axis 1
            layout: overrides the configured layout; configures it on first use if neither is set
            source_width, source_height: size of the image the tensor was computed from
            confidence_threshold: candidates below it are dropped before any geometry work

        Raises MalformedTensor when the tensor's feature axis disagrees with the
        layout (and, for the configured layout, with the configured shape).
        """

        if np.size(tensor) == 0:
            return []
        if layout is None:
            layout = self._layout if self._layout is not None else self.configure(np.shape(tensor))

        cand = self._candidates(tensor, layout)
        if cand.shape[0] == 0:
            return []

        cand = cand[cand[:, CONFIDENCE_INDEX] >= confidence_threshold]
        if cand.shape[0] == 0:
            return []

        geom = cand[:, :4]
        normalized = np.all(geom <= 1.0, axis=1)
        sx, sy = model_scale(source_width, source_height, self.model_input_size)
        scale_x = np.where(normalized, float(source_width), sx)
        scale_y = np.where(normalized, float(source_height), sy)

        cx = geom[:, 0] * scale_x
        cy = geom[:, 1] * scale_y
        w = geom[:, 2] * scale_x
        h = geom[:, 3] * scale_y
        conf = cand[:, CONFIDENCE_INDEX]

        detections = [
            clip_detection(
                Detection(
                    center_x=float(cx[i]),
                    center_y=float(cy[i]),
                    width=float(w[i]),
                    height=float(h[i]),
                    confidence=float(conf[i]),
                    class_id=self.class_id,
                    class_name=self.class_name,
                ),
                source_width,
                source_height,
            )
            for i in range(cand.shape[0])
        ]
        logger.debug(
            "Decoded %d candidates above %.2f (%d normalized) for %dx%d source",
            len(detections),
            confidence_threshold,
            int(np.count_nonzero(normalized)),
            source_width,
            source_height,
        )
        return detections

    # ------------------------------------------------------------------ #
    # Helper internal
    # ------------------------------------------------------------------ #
    def _candidates(self, tensor: np.ndarray, layout: TensorLayout) -> np.ndarray:
        """
        View the tensor as (N, 5) rows of [x, y, w, h, confidence] in float64.
        """

        p = np.asarray(tensor)
        if p.size == 0:
            return np.empty((0, FEATURE_COUNT), dtype=np.float64)
        rows, cols = _squeeze_batch(p.shape)
        p = p.reshape(rows, cols)
        self._check_feature_axis(rows, cols, layout)

        if layout is TensorLayout.FEATURE_MAJOR:
            return p.T.astype(np.float64)
        return p[:, :FEATURE_COUNT].astype(np.float64)

    def _check_feature_axis(self, rows: int, cols: int, layout: TensorLayout) -> None:
        """
        The candidate count may change between calls; the feature axis may not.
        """

        if layout is TensorLayout.FEATURE_MAJOR:
            features, expected = rows, FEATURE_COUNT
        else:
            features, expected = cols, None
            if cols < FEATURE_COUNT:
                raise MalformedTensor(f"Row-major output needs at least {FEATURE_COUNT} columns, got shape {(rows, cols)}")

        if layout is self._layout and self._configured_shape is not None:
            configured_rows, configured_cols = self._configured_shape
            expected = configured_rows if layout is TensorLayout.FEATURE_MAJOR else configured_cols
        if expected is not None and features != expected:
            raise MalformedTensor(
                f"Output shape {(rows, cols)} does not match the configured {layout.value} layout "
                f"(expected {expected} features, configured shape {self._configured_shape})"
            )
