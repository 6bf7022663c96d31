"""User Story Pipeline.

Appends user story entries to a markdown document when a labeled issue is
opened (or on manual dispatch) and publishes the change as a git commit:

- configuration loaded from the environment / `.env`
- structured logging
- trigger resolution, story appending and change committing
"""

__version__ = "0.1.0"

from user_story_pipeline.pipeline.config import PipelineSettings

__all__ = ["__version__", "PipelineSettings"]
