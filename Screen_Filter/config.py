from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from guard_kit.runtime import DetectorConfig


@dataclass(frozen=True)
class PipelineConfig:
    """
    Settings fixed before the scheduler starts and read-only for the whole run.
    """

    confidence_threshold: float = 0.10
    iou_threshold: float = 0.45
    model_input_size: int = 512
    min_process_interval_ms: int = 300

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be within [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be within [0, 1]")
        if self.model_input_size <= 0:
            raise ValueError("model_input_size must be > 0")
        if self.min_process_interval_ms < 0:
            raise ValueError("min_process_interval_ms must be >= 0")

    def detector_config(self, **overrides: Any) -> DetectorConfig:
        return DetectorConfig(
            confidence_threshold=self.confidence_threshold,
            iou_threshold=self.iou_threshold,
            model_input_size=self.model_input_size,
            **overrides,
        )


def _optional_number(payload: Dict[str, Any], key: str, default: float) -> float:
    if key not in payload:
        return default
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _optional_int(payload: Dict[str, Any], key: str, default: int) -> int:
    if key not in payload:
        return default
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def load_pipeline_config(path: Path) -> PipelineConfig:
    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid pipeline config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Pipeline config must be a JSON object")

    allowed = {
        "confidence_threshold",
        "iou_threshold",
        "model_input_size",
        "min_process_interval_ms",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown pipeline config keys: {unknown}")

    defaults = PipelineConfig()
    return PipelineConfig(
        confidence_threshold=_optional_number(payload, "confidence_threshold", defaults.confidence_threshold),
        iou_threshold=_optional_number(payload, "iou_threshold", defaults.iou_threshold),
        model_input_size=_optional_int(payload, "model_input_size", defaults.model_input_size),
        min_process_interval_ms=_optional_int(payload, "min_process_interval_ms", defaults.min_process_interval_ms),
    )
