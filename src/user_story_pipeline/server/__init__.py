"""FastAPI webhook adapter for the story ingestion pipeline.

Design intent:
- Keep pipeline logic in `user_story_pipeline.pipeline.*`
- Keep server-specific concerns (signature checks, routing, run serialization) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from user_story_pipeline.server.app import create_app
