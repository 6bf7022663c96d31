"""CLI entrypoint for the story ingestion pipeline.

Exit codes are CI-friendly:
- 0: success, including "no changes" and "skipped" (issue not labeled)
- 1: appender or commit failure, or an unexpected error
- 2: configuration or trigger validation error
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

import uvicorn
from pydantic import ValidationError

from user_story_pipeline import __version__
from user_story_pipeline.pipeline.appender import (
    MarkdownTableAppender,
    StoryAppender,
    create_appender,
    init_story_file,
)
from user_story_pipeline.pipeline.committer import ChangeCommitter
from user_story_pipeline.pipeline.config import PipelineSettings, normalize_log_level
from user_story_pipeline.pipeline.errors import PipelineError, TriggerValidationError
from user_story_pipeline.pipeline.github.client import GitHubClient
from user_story_pipeline.pipeline.logging import configure_logging
from user_story_pipeline.pipeline.models import Invocation
from user_story_pipeline.pipeline.runner import PipelineResult, run_pipeline
from user_story_pipeline.pipeline.trigger import (
    build_invocation,
    load_event_payload,
    resolve_event,
    resolve_issue,
    resolve_manual_dispatch,
)
from user_story_pipeline.server.app import create_app

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INVALID = 2


def _log_level(value: str) -> str:
    try:
        return normalize_log_level(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _add_story_arguments(parser: argparse.ArgumentParser, *, url_flags: tuple[str, ...]) -> None:
    # Values stay strings so validation errors surface as trigger errors, not argparse usage errors.
    parser.add_argument("--issue-number", required=True, help="Related issue number")
    parser.add_argument(*url_flags, dest="url", required=True, help="URL of the related issue")
    parser.add_argument("--status", required=True, help="Status of the user story")
    parser.add_argument("--content", required=True, help="Description of the user story")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="user-story",
        description="Append user stories to a markdown document and publish the change",
    )
    parser.add_argument("--version", action="version", version=f"user-story-pipeline {__version__}")
    parser.add_argument(
        "--log-level",
        type=_log_level,
        default=None,
        help="Log level: debug | info | warning | error | critical (default: USER_STORY_LOG_LEVEL)",
    )
    parser.add_argument(
        "--file",
        default=None,
        help=(
            "File to read from/write to, relative to USER_STORY_REPO_PATH "
            "(default: USER_STORY_FILE)"
        ),
    )
    parser.add_argument(
        "--skip-lines",
        default=None,
        help="Number of header lines to skip in the file (default: USER_STORY_SKIP_LINES)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser(
        "create",
        help="Insert a user story into the file (no commit)",
    )
    _add_story_arguments(create, url_flags=("--url",))

    subparsers.add_parser(
        "init",
        help="Create the story file with a table header if it does not exist",
    )

    dispatch = subparsers.add_parser(
        "dispatch",
        help="Manual dispatch: insert a user story, then commit and push the docs directory",
    )
    _add_story_arguments(dispatch, url_flags=("--issue-url", "--url"))
    dispatch.add_argument("--no-commit", action="store_true", help="Skip the commit stage")

    event = subparsers.add_parser(
        "event",
        help="Run the pipeline for a GitHub Actions event (issues / workflow_dispatch)",
    )
    event.add_argument(
        "--event-name",
        default=os.environ.get("GITHUB_EVENT_NAME", ""),
        help="Event name (default: GITHUB_EVENT_NAME)",
    )
    event.add_argument(
        "--event-path",
        default=os.environ.get("GITHUB_EVENT_PATH", ""),
        help="Path to the event payload JSON (default: GITHUB_EVENT_PATH)",
    )
    event.add_argument("--no-commit", action="store_true", help="Skip the commit stage")

    subparsers.add_parser(
        "commit",
        help="Commit and push the docs directory if it changed",
    )

    import_issue = subparsers.add_parser(
        "import-issue",
        help="Fetch an existing issue from GitHub and insert it as a user story",
    )
    import_issue.add_argument(
        "--repo",
        "--repository",
        dest="repository",
        required=True,
        help="Repository in the form 'owner/repo'",
    )
    import_issue.add_argument("--issue-number", type=int, required=True, help="Issue number")
    import_issue.add_argument(
        "--status",
        default=None,
        help="Status of the user story (default: USER_STORY_CREATE_STATUS)",
    )
    import_issue.add_argument(
        "--ignore-label",
        action="store_true",
        help="Import even if the issue does not carry the user story label",
    )
    import_issue.add_argument("--no-commit", action="store_true", help="Skip the commit stage")

    serve = subparsers.add_parser(
        "serve",
        help="Run the GitHub webhook receiver (runs are serialized per process)",
    )
    serve.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve.add_argument("--port", type=int, default=8000, help="Bind port")

    return parser


def _apply_overrides(settings: PipelineSettings, args: argparse.Namespace) -> PipelineSettings:
    """Fold the global CLI options into the settings (validated like env values)."""

    update: dict[str, object] = {}
    if args.log_level is not None:
        update["log_level"] = args.log_level
    if args.file is not None:
        update["story_file"] = args.file
    if args.skip_lines is not None:
        update["skip_lines"] = args.skip_lines
    if not update:
        return settings
    try:
        return PipelineSettings.model_validate({**settings.model_dump(), **update})
    except ValidationError as e:
        raise TriggerValidationError(str(e)) from e


def _print_result(result: PipelineResult) -> None:
    if result.commit is None:
        print(f"Added user story for issue #{result.issue_number} (commit skipped)")
    elif result.commit.changed:
        print(
            f"Added user story for issue #{result.issue_number}; "
            f"committed {result.commit.commit_sha}"
        )
    else:
        print(f"Added user story for issue #{result.issue_number}; no changes detected")


def _run(
    invocation: Invocation,
    settings: PipelineSettings,
    *,
    appender: StoryAppender,
    commit: bool,
) -> int:
    configure_logging(invocation.log_level)
    committer = ChangeCommitter.from_settings(settings) if commit else None
    result = run_pipeline(invocation, appender=appender, committer=committer)
    _print_result(result)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = PipelineSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your environment / .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return EXIT_INVALID

    configure_logging(settings.log_level)

    try:
        settings = _apply_overrides(settings, args)
        configure_logging(settings.log_level)

        if args.command == "create":
            invocation = build_invocation(
                issue_number=args.issue_number,
                url=args.url,
                status=args.status,
                content=args.content,
                log_level=settings.log_level,
                story_file=settings.story_path,
                skip_lines=settings.skip_lines,
                source="manual",
            )
            # `create` is the appender contract itself; it never delegates to an external tool.
            MarkdownTableAppender().append(invocation)
            print(
                f"Added user story for issue #{invocation.record.issue_number} "
                f"to {invocation.story_file}"
            )
            return EXIT_OK

        if args.command == "init":
            created = init_story_file(settings.story_path)
            if created:
                print(f"Created {settings.story_path}")
            else:
                print(f"{settings.story_path} already exists")
            return EXIT_OK

        if args.command == "dispatch":
            invocation = resolve_manual_dispatch(
                {
                    "content": args.content,
                    "log-level": settings.log_level,
                    "file": str(settings.story_file),
                    "skip-lines": str(settings.skip_lines),
                    "issue-number": args.issue_number,
                    "issue-url": args.url,
                    "status": args.status,
                },
                settings,
            )
            return _run(
                invocation, settings, appender=create_appender(settings), commit=not args.no_commit
            )

        if args.command == "event":
            if not args.event_name.strip():
                raise TriggerValidationError(
                    "event name is required (--event-name or GITHUB_EVENT_NAME)"
                )
            if not args.event_path.strip():
                raise TriggerValidationError(
                    "event payload is required (--event-path or GITHUB_EVENT_PATH)"
                )

            payload = load_event_payload(Path(args.event_path))
            resolved = resolve_event(args.event_name.strip(), payload, settings)
            if resolved is None:
                print(f"Skipped {args.event_name} event: nothing to do")
                return EXIT_OK
            return _run(
                resolved, settings, appender=create_appender(settings), commit=not args.no_commit
            )

        if args.command == "commit":
            outcome = ChangeCommitter.from_settings(settings).commit_if_changed()
            print(f"Committed {outcome.commit_sha}" if outcome.changed else "No changes detected.")
            return EXIT_OK

        if args.command == "import-issue":
            if not settings.github_token.strip():
                raise TriggerValidationError("USER_STORY_GITHUB_TOKEN is required for import-issue")

            github = GitHubClient(
                token=settings.github_token,
                repository=args.repository,
                base_url=settings.github_base_url,
            )
            try:
                details = github.get_issue(issue_number=args.issue_number)
            finally:
                github.close()

            resolved = resolve_issue(
                details.as_payload(),
                settings,
                status=args.status,
                require_label=not args.ignore_label,
            )
            if resolved is None:
                print(
                    f"Issue #{details.number} is not labeled '{settings.story_label}'; "
                    "use --ignore-label to import it anyway"
                )
                return EXIT_OK
            return _run(
                resolved, settings, appender=create_appender(settings), commit=not args.no_commit
            )

        if args.command == "serve":
            uvicorn.run(create_app(settings), host=args.host, port=args.port, log_config=None)
            return EXIT_OK

        logger.error("Unknown command", extra={"command": args.command})
        return EXIT_INVALID

    except TriggerValidationError as e:
        logger.error("Invalid trigger input", extra={"error": str(e)})
        print(f"Invalid input: {e}", file=sys.stderr)
        return EXIT_INVALID

    except PipelineError as e:
        logger.error("Pipeline failed", extra={"error": str(e), "stage": type(e).__name__})
        print(str(e), file=sys.stderr)
        return EXIT_FAILURE

    except Exception:
        logger.exception("Command failed")
        return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
