"""Pydantic models for the webhook server."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

WebhookStatus = Literal["skipped", "appended"]


class WebhookResponse(BaseModel):
    status: WebhookStatus
    event: str
    issue_number: int | None = None
    committed: bool = False
    commit_sha: str | None = None
