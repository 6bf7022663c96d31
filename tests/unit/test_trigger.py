"""Unit tests for trigger resolution."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from user_story_pipeline.pipeline.config import PipelineSettings
from user_story_pipeline.pipeline.errors import TriggerValidationError
from user_story_pipeline.pipeline.trigger import (
    load_event_payload,
    resolve_event,
    resolve_issue,
    resolve_issue_event,
    resolve_manual_dispatch,
)


def _issue_payload(
    *, labels: list[str], body: str | None = "As a user, I want X"
) -> dict[str, Any]:
    return {
        "action": "opened",
        "issue": {
            "number": 7,
            "html_url": "https://github.com/acme/repo/issues/7",
            "body": body,
            "labels": [{"name": name} for name in labels],
        },
    }


def _dispatch_inputs(**overrides: str) -> dict[str, str]:
    inputs = {
        "content": "As a user, I want X",
        "log-level": "info",
        "file": "docs/user-stories/README.md",
        "skip-lines": "2",
        "issue-number": "42",
        "issue-url": "https://x/issues/42",
        "status": "Done",
    }
    inputs.update(overrides)
    return inputs


@pytest.fixture
def settings() -> PipelineSettings:
    return PipelineSettings(_env_file=None, story_file=Path("stories.md"), skip_lines=3)


def test_labeled_issue_uses_process_defaults(settings: PipelineSettings) -> None:
    invocation = resolve_issue_event(_issue_payload(labels=["bug", "user-story"]), settings)

    assert invocation is not None
    assert invocation.source == "issue"
    assert invocation.record.issue_number == 7
    assert invocation.record.url == "https://github.com/acme/repo/issues/7"
    assert invocation.record.status == "In-Progress"
    assert invocation.record.content == "As a user, I want X"
    assert invocation.log_level == "error"
    assert invocation.story_file == Path("stories.md")
    assert invocation.skip_lines == 3


def test_unlabeled_issue_is_skipped(settings: PipelineSettings) -> None:
    assert resolve_issue_event(_issue_payload(labels=["bug"]), settings) is None


def test_issue_label_is_configurable() -> None:
    settings = PipelineSettings(_env_file=None, story_label="story")

    assert resolve_issue_event(_issue_payload(labels=["user-story"]), settings) is None
    assert resolve_issue_event(_issue_payload(labels=["story"]), settings) is not None


def test_non_opened_issue_action_is_skipped(settings: PipelineSettings) -> None:
    payload = _issue_payload(labels=["user-story"])
    payload["action"] = "labeled"

    assert resolve_issue_event(payload, settings) is None


def test_labeled_issue_without_body_fails_validation(settings: PipelineSettings) -> None:
    with pytest.raises(TriggerValidationError, match="content"):
        resolve_issue_event(_issue_payload(labels=["user-story"], body=None), settings)


def test_issue_payload_without_issue_object_fails(settings: PipelineSettings) -> None:
    with pytest.raises(TriggerValidationError):
        resolve_issue_event({"action": "opened"}, settings)


def test_resolve_issue_can_bypass_label_and_override_status(settings: PipelineSettings) -> None:
    issue = _issue_payload(labels=[])["issue"]

    invocation = resolve_issue(issue, settings, status="Done", require_label=False)

    assert invocation is not None
    assert invocation.record.status == "Done"


def test_manual_dispatch_uses_form_values(settings: PipelineSettings) -> None:
    invocation = resolve_manual_dispatch(_dispatch_inputs(), settings)

    assert invocation.source == "manual"
    assert invocation.record.issue_number == 42
    assert invocation.record.url == "https://x/issues/42"
    assert invocation.record.status == "Done"
    assert invocation.log_level == "info"
    assert invocation.story_file == Path("docs/user-stories/README.md")
    assert invocation.skip_lines == 2


def test_manual_dispatch_falls_back_to_defaults_for_file_and_skip_lines(
    settings: PipelineSettings,
) -> None:
    inputs = _dispatch_inputs(file="", **{"skip-lines": " "})

    invocation = resolve_manual_dispatch(inputs, settings)

    assert invocation.story_file == Path("stories.md")
    assert invocation.skip_lines == 3


def test_manual_dispatch_accepts_snake_case_inputs(settings: PipelineSettings) -> None:
    inputs = {key.replace("-", "_"): value for key, value in _dispatch_inputs().items()}

    invocation = resolve_manual_dispatch(inputs, settings)

    assert invocation.record.issue_number == 42


def test_manual_dispatch_missing_content_fails(settings: PipelineSettings) -> None:
    inputs = _dispatch_inputs()
    del inputs["content"]

    with pytest.raises(TriggerValidationError, match="content"):
        resolve_manual_dispatch(inputs, settings)


def test_manual_dispatch_reports_every_missing_input(settings: PipelineSettings) -> None:
    with pytest.raises(TriggerValidationError) as exc:
        resolve_manual_dispatch({"content": "Story"}, settings)

    message = str(exc.value)
    for name in ("log-level", "issue-number", "issue-url", "status"):
        assert name in message


@pytest.mark.parametrize(
    "overrides",
    [
        {"issue-number": "forty-two"},
        {"issue-number": "0"},
        {"log-level": "verbose"},
        {"skip-lines": "two"},
        {"skip-lines": "-1"},
        {"issue-url": "not a url"},
    ],
)
def test_manual_dispatch_rejects_malformed_inputs(
    settings: PipelineSettings, overrides: dict[str, str]
) -> None:
    with pytest.raises(TriggerValidationError):
        resolve_manual_dispatch(_dispatch_inputs(**overrides), settings)


def test_resolve_event_dispatches_by_event_name(settings: PipelineSettings) -> None:
    issue = resolve_event("issues", _issue_payload(labels=["user-story"]), settings)
    manual = resolve_event("workflow_dispatch", {"inputs": _dispatch_inputs()}, settings)

    assert issue is not None and issue.source == "issue"
    assert manual is not None and manual.source == "manual"


def test_resolve_event_skips_unsupported_events(settings: PipelineSettings) -> None:
    assert resolve_event("ping", {"zen": "Keep it logically awesome."}, settings) is None


def test_resolve_event_requires_dispatch_inputs(settings: PipelineSettings) -> None:
    with pytest.raises(TriggerValidationError):
        resolve_event("workflow_dispatch", {}, settings)


def test_load_event_payload(tmp_path: Path) -> None:
    path = tmp_path / "event.json"
    path.write_text(json.dumps(_issue_payload(labels=["user-story"])), encoding="utf-8")

    payload = load_event_payload(path)

    assert payload["issue"]["number"] == 7


def test_load_event_payload_errors(tmp_path: Path) -> None:
    with pytest.raises(TriggerValidationError, match="not found"):
        load_event_payload(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(TriggerValidationError, match="not valid JSON"):
        load_event_payload(bad)

    wrong_shape = tmp_path / "list.json"
    wrong_shape.write_text("[]", encoding="utf-8")
    with pytest.raises(TriggerValidationError, match="unexpected shape"):
        load_event_payload(wrong_shape)


def test_load_event_payload_rejects_undecodable_bytes(tmp_path: Path) -> None:
    path = tmp_path / "event.json"
    path.write_bytes(b'{"a": "\xff"}')

    with pytest.raises(TriggerValidationError, match="not valid JSON"):
        load_event_payload(path)


def test_relative_story_files_resolve_against_repo_path(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    settings = PipelineSettings(_env_file=None, repo_path=repo)

    from_issue = resolve_issue_event(_issue_payload(labels=["user-story"]), settings)
    from_form = resolve_manual_dispatch(_dispatch_inputs(file="notes/stories.md"), settings)
    absolute = resolve_manual_dispatch(_dispatch_inputs(file=str(tmp_path / "abs.md")), settings)

    assert from_issue is not None
    assert from_issue.story_file == repo / "docs" / "user-stories" / "README.md"
    assert from_form.story_file == repo / "notes" / "stories.md"
    assert absolute.story_file == tmp_path / "abs.md"
