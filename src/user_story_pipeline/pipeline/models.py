"""Data model shared by the pipeline stages."""

from __future__ import annotations

import re
from pathlib import Path
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from user_story_pipeline.pipeline.config import normalize_log_level

# Checked before urlparse, which drops tabs and newlines.
_URL_FORBIDDEN = re.compile(r"[\s\x00-\x1f\x7f-\x9f]")


class StoryRecord(BaseModel):
    """One user story entry: (issue_number, url, status, content).

    Built fresh per triggering event and never persisted as-is; only its
    rendered form ends up in the story file.
    """

    model_config = ConfigDict(frozen=True)

    issue_number: int = Field(gt=0)
    url: str
    status: str
    content: str

    @field_validator("url")
    @classmethod
    def _well_formed_url(cls, value: str) -> str:
        url = value.strip()
        if _URL_FORBIDDEN.search(url):
            raise ValueError(
                f"url must not contain whitespace or control characters; got {value!r}"
            )
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"url must be an absolute URI with scheme and host; got {value!r}")
        return url

    @field_validator("status")
    @classmethod
    def _non_blank_status(cls, value: str) -> str:
        status = value.strip()
        if not status:
            raise ValueError("status must not be empty")
        return status

    @field_validator("content")
    @classmethod
    def _non_blank_content(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must not be empty")
        return value


class Invocation(BaseModel):
    """A resolved trigger: the story plus the operational parameters for this run."""

    model_config = ConfigDict(frozen=True)

    record: StoryRecord
    log_level: str
    story_file: Path
    skip_lines: int = Field(ge=0)
    source: str = Field(default="manual", description="'issue' or 'manual'")

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        return normalize_log_level(value)
