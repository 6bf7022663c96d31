"""Console entrypoint shim.

The CLI itself is implemented in `user_story_pipeline.pipeline.main`.
"""

from __future__ import annotations

from user_story_pipeline.pipeline.main import main

__all__ = ["main"]


if __name__ == "__main__":
    raise SystemExit(main())
