from __future__ import annotations

from pathlib import Path
from typing import Dict, Union

# Single-class detector: everything it reports is flagged content.
DEFAULT_CLASS_NAMES: Dict[int, str] = {0: "not_safe"}


def load_class_names(metadata_path: Union[str, Path]) -> Dict[int, str]:
    """
    Load class names from a model's `metadata.yaml`, which stores a flat mapping:

        names:
          0: not_safe

    Only the `names:` block is read, so no YAML parser is needed. A file with no
    usable entries yields DEFAULT_CLASS_NAMES.
    """

    path = Path(metadata_path)
    if not path.exists():
        raise FileNotFoundError(f"Model metadata not found: {path}")

    names: Dict[int, str] = {}
    in_names = False

    with path.open("r", encoding="utf-8") as f:
        for raw in f:
            if not raw.strip() or raw.lstrip().startswith("#"):
                continue
            line = raw.strip()
            if line == "names:":
                in_names = True
                continue
            if not in_names:
                continue
            # A new top-level key closes the block.
            if not raw[0].isspace() and not line[0].isdigit():
                break

            # Parse "id: label"
            if ":" not in line:
                continue
            left, right = line.split(":", 1)
            left = left.strip()
            right = right.strip().strip("'").strip('"')
            if not left.isdigit() or not right:
                continue
            names[int(left)] = right

    return names or dict(DEFAULT_CLASS_NAMES)
