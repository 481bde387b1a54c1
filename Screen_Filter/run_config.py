"""
JSON run config for the screen filter runner.

Every key names an argparse destination of the runner (`conf`, `interval_ms`,
`show`, ...). Values from the file fill in options the user did not pass on
the command line. The input source may be given either as top-level
`video`/`webcam`/`rtsp` keys or as a `source` object holding one of them:

    {"source": {"rtsp": "rtsp://cam/stream"}, "interval_ms": 500, "progress": true}
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Callable, Dict, Mapping, Sequence, Set

SOURCE_KEYS = ("video", "webcam", "rtsp")


def _as_str(key: str, value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string")
    return value


def _as_int(key: str, value: object) -> int:
    # JSON has one number type; 500.0 is accepted as 500.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _as_float(key: str, value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _as_bool(key: str, value: object) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be true or false")
    return value


def _as_provider_list(key: str, value: object) -> str:
    """
    ORT providers as a list or a comma-separated string; stored comma-joined,
    the way the command-line flag carries them.
    """

    items = [value] if isinstance(value, str) else value
    if not isinstance(items, list) or not items or not all(isinstance(v, str) for v in items):
        raise ValueError(f"{key} must be a non-empty string or list of strings")
    cleaned = [v.strip() for v in items]
    if any(not v for v in cleaned):
        raise ValueError(f"{key} must not contain empty strings")
    return ",".join(cleaned)


Coercer = Callable[[str, object], object]

COERCERS: Dict[str, Coercer] = {
    "video": _as_str,
    "rtsp": _as_str,
    "webcam": _as_int,
    "model": _as_str,
    "metadata": _as_str,
    "backend": _as_str,
    "onnx_providers": _as_provider_list,
    "allow_missing_model": _as_bool,
    "pipeline_config": _as_str,
    "conf": _as_float,
    "iou": _as_float,
    "imgsz": _as_int,
    "interval_ms": _as_int,
    "realtime": _as_bool,
    "max_frames": _as_int,
    "show": _as_bool,
    "display_width": _as_int,
    "display_height": _as_int,
    "progress": _as_bool,
    "log_level": _as_str,
}


def load_run_config(path: Path) -> Dict[str, object]:
    if not path.is_file():
        raise FileNotFoundError(f"Run config not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Run config {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"Run config {path} must hold a JSON object")
    return payload


def collect_cli_dests(parser: argparse.ArgumentParser, argv: Sequence[str]) -> Set[str]:
    """
    Destinations set explicitly on the command line, as `--flag value` or `--flag=value`.
    """

    given = {arg.split("=", 1)[0] for arg in argv if arg.startswith("-")}
    return {action.dest for action in parser._actions if given.intersection(action.option_strings)}


def _source_from_block(block: object, cli_dests: Set[str]) -> Dict[str, object]:
    if not isinstance(block, dict):
        raise ValueError("'source' must be an object")
    stray = sorted(set(block) - set(SOURCE_KEYS))
    if stray:
        raise ValueError(f"Unknown keys in 'source': {stray}")
    chosen = {k: v for k, v in block.items() if v not in (None, "")}
    if len(chosen) > 1:
        raise ValueError(f"'source' must name a single input, got {sorted(chosen)}")
    if "webcam" in chosen and (isinstance(chosen["webcam"], bool) or not isinstance(chosen["webcam"], int)):
        raise ValueError("source.webcam must be an integer index")
    if cli_dests.intersection(SOURCE_KEYS):
        # The command-line source replaces the configured one.
        return {}
    return chosen


def apply_run_config(
    *,
    args: argparse.Namespace,
    payload: Mapping[str, object],
    cli_dests: Set[str],
    parser: argparse.ArgumentParser,
) -> None:
    """
    Copy config values onto `args`, skipping anything given on the command line.
    Raises ValueError for unknown keys or values of the wrong type.
    """

    known = {action.dest for action in parser._actions} & set(COERCERS)
    unknown = sorted(k for k in payload if k != "source" and k not in known)
    if unknown:
        raise ValueError(f"Unknown run config keys: {unknown}")
    if "source" in payload and any(k in payload for k in SOURCE_KEYS):
        raise ValueError("Give the input either as a 'source' object or as top-level video/webcam/rtsp, not both")

    values: Dict[str, object] = {k: v for k, v in payload.items() if k != "source" and v is not None}
    if "source" in payload:
        values.update(_source_from_block(payload["source"], cli_dests))

    for key, value in values.items():
        coerced = COERCERS[key](key, value)
        if key not in cli_dests:
            setattr(args, key, coerced)
