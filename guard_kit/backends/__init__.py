"""
Optional inference engines for guard_kit.

Backends live in a separate module so decoding, suppression and scheduling
stay importable without an inference runtime installed. Each backend exposes
`infer(blob)`, `output_shape` (None when the model does not declare a static
one), `channels_first` and `close()`.
"""

from __future__ import annotations

__all__ = []
