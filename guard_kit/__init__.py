"""
Detection core for flagged-content screening.

Decodes a detector's raw output tensor, suppresses duplicate regions and maps
boxes between model, source-image and display coordinates. Framework-agnostic:
works with NumPy arrays from ONNX Runtime or TorchScript. OpenCV is only
needed for resizing frames and drawing overlays.
"""

from .types import Box, CoordinateSpace, Detection, TensorLayout
from .errors import (
    BufferAcquisitionFailure,
    FrameConversionFailure,
    MalformedTensor,
    ModelUnavailable,
    PipelineError,
)
from .coords import CoordinateMapper, clip_box, model_scale, to_display
from .decode import TensorDecoder, infer_layout
from .nms import NMSConfig, iou, nms, suppress
from .preprocess import PIXEL_FORMATS, prepare_input
from .runtime import DetectionPipeline, DetectorConfig, load_pipeline, find_project_root, resolve_path
from .metadata import DEFAULT_CLASS_NAMES, load_class_names
from .visualize import draw_detections

__all__ = [
    "Box",
    "CoordinateSpace",
    "Detection",
    "TensorLayout",
    "BufferAcquisitionFailure",
    "FrameConversionFailure",
    "MalformedTensor",
    "ModelUnavailable",
    "PipelineError",
    "CoordinateMapper",
    "clip_box",
    "model_scale",
    "to_display",
    "TensorDecoder",
    "infer_layout",
    "NMSConfig",
    "iou",
    "nms",
    "suppress",
    "PIXEL_FORMATS",
    "prepare_input",
    "DetectionPipeline",
    "DetectorConfig",
    "load_pipeline",
    "find_project_root",
    "resolve_path",
    "DEFAULT_CLASS_NAMES",
    "load_class_names",
    "draw_detections",
]
