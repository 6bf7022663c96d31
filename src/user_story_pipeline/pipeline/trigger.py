"""Trigger Resolver: turn an event context into an `Invocation`.

Two event sources are supported:

- `issues` (action `opened`): gated on the story label; log level, file,
  skip-lines and status come from the process-wide settings, the record
  fields from the issue payload.
- `workflow_dispatch`: every field comes from the form inputs; file and
  skip-lines fall back to the settings when left blank. No label gate.

Anything else resolves to `None`, meaning "do not run the pipeline".
Malformed input raises `TriggerValidationError` before any file is touched.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from user_story_pipeline.pipeline.config import PipelineSettings
from user_story_pipeline.pipeline.errors import TriggerValidationError
from user_story_pipeline.pipeline.models import Invocation, StoryRecord

logger = logging.getLogger(__name__)

EVENT_ISSUES = "issues"
EVENT_WORKFLOW_DISPATCH = "workflow_dispatch"

REQUIRED_DISPATCH_INPUTS: tuple[str, ...] = (
    "content",
    "log-level",
    "issue-number",
    "issue-url",
    "status",
)


def describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ())) or "input"
        parts.append(f"{loc}: {item.get('msg', 'invalid value')}")
    return "; ".join(parts)


def issue_label_names(issue: Mapping[str, Any]) -> list[str]:
    labels = issue.get("labels") or []
    names: list[str] = []
    for label in labels:
        if isinstance(label, Mapping):
            name = label.get("name")
        else:
            name = label
        if isinstance(name, str) and name.strip():
            names.append(name.strip())
    return names


def build_invocation(
    *,
    issue_number: object,
    url: object,
    status: object,
    content: object,
    log_level: object,
    story_file: object,
    skip_lines: object,
    source: str,
) -> Invocation:
    try:
        record = StoryRecord.model_validate(
            {"issue_number": issue_number, "url": url, "status": status, "content": content}
        )
        return Invocation.model_validate(
            {
                "record": record,
                "log_level": log_level,
                "story_file": story_file,
                "skip_lines": skip_lines,
                "source": source,
            }
        )
    except ValidationError as e:
        raise TriggerValidationError(describe_validation_error(e)) from e


def resolve_issue_event(
    payload: Mapping[str, Any], settings: PipelineSettings
) -> Invocation | None:
    """Resolve an `issues` webhook payload.

    Returns None when the action is not `opened` or the issue lacks the story label.
    """

    action = payload.get("action")
    if action != "opened":
        logger.info("Ignoring issue event", extra={"action": action})
        return None

    issue = payload.get("issue")
    if not isinstance(issue, Mapping):
        raise TriggerValidationError("issue event payload has no 'issue' object")

    return resolve_issue(issue, settings)


def resolve_issue(
    issue: Mapping[str, Any],
    settings: PipelineSettings,
    *,
    status: str | None = None,
    require_label: bool = True,
) -> Invocation | None:
    """Resolve a single issue object (webhook `issue` or an API response).

    `status` defaults to the configured create status. Returns None when
    `require_label` is set and the issue lacks the story label.
    """

    labels = issue_label_names(issue)
    if require_label and settings.story_label not in labels:
        logger.info(
            "Issue is not labeled as a user story; skipping",
            extra={"issue_number": issue.get("number"), "labels": labels},
        )
        return None

    return build_invocation(
        issue_number=issue.get("number"),
        url=issue.get("html_url"),
        status=status if status is not None else settings.create_status,
        content=issue.get("body") or "",
        log_level=settings.log_level,
        story_file=settings.story_path,
        skip_lines=settings.skip_lines,
        source="issue",
    )


def _normalize_inputs(inputs: Mapping[str, Any]) -> dict[str, Any]:
    # Form inputs are dash-separated; accept snake_case too.
    normalized: dict[str, Any] = {}
    for key, value in inputs.items():
        normalized[str(key).replace("_", "-")] = value.strip() if isinstance(value, str) else value
    return normalized


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def resolve_manual_dispatch(
    inputs: Mapping[str, Any], settings: PipelineSettings
) -> Invocation:
    """Resolve `workflow_dispatch` form inputs."""

    values = _normalize_inputs(inputs)

    missing = [name for name in REQUIRED_DISPATCH_INPUTS if _is_blank(values.get(name))]
    if missing:
        raise TriggerValidationError(f"missing required input(s): {', '.join(missing)}")

    story_file = values.get("file")
    if _is_blank(story_file):
        story_file = settings.story_path
    elif isinstance(story_file, str):
        story_file = settings.resolve_story_path(story_file)

    skip_lines = values.get("skip-lines")
    if _is_blank(skip_lines):
        skip_lines = settings.skip_lines

    return build_invocation(
        issue_number=values["issue-number"],
        url=values["issue-url"],
        status=values["status"],
        content=inputs.get("content"),
        log_level=values["log-level"],
        story_file=story_file,
        skip_lines=skip_lines,
        source="manual",
    )


def resolve_event(
    event_name: str, payload: Mapping[str, Any], settings: PipelineSettings
) -> Invocation | None:
    """Resolve any supported event; None means the pipeline must not run."""

    if event_name == EVENT_ISSUES:
        return resolve_issue_event(payload, settings)

    if event_name == EVENT_WORKFLOW_DISPATCH:
        inputs = payload.get("inputs")
        if not isinstance(inputs, Mapping):
            raise TriggerValidationError("workflow_dispatch payload has no 'inputs' object")
        return resolve_manual_dispatch(inputs, settings)

    logger.info("Unsupported event; skipping", extra={"event_name": event_name})
    return None


def load_event_payload(path: Path) -> dict[str, Any]:
    """Read a GitHub event payload (e.g. the file at `GITHUB_EVENT_PATH`)."""

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise TriggerValidationError(f"event payload not found: {path}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise TriggerValidationError(f"event payload is not valid JSON: {path}") from e

    if not isinstance(raw, dict):
        raise TriggerValidationError(f"event payload has unexpected shape: {path}")
    return raw
