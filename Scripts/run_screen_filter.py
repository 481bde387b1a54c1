from __future__ import annotations

from Screen_Filter.runner import main

if __name__ == "__main__":
    raise SystemExit(main())
