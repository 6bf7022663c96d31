"""Story Appender: insert a rendered `StoryRecord` into the story file.

The story file is a markdown table. Its first `skip_lines` lines (by default
the header row and the separator row) are never modified; each new story is
inserted as one row directly below them, so the newest story comes first.

Every call is an unconditional insert. Running the same record twice yields
two rows.

Two implementations share the `StoryAppender` interface:
- `MarkdownTableAppender` renders and inserts rows itself.
- `CommandAppender` shells out to an external tool that honours the
  `--log-level/--file/--skip-lines create --issue-number/--url/--status/--content`
  command-line contract.
"""

from __future__ import annotations

import io
import logging
import re
import shlex
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from user_story_pipeline.pipeline.config import PipelineSettings
from user_story_pipeline.pipeline.errors import AppenderError
from user_story_pipeline.pipeline.models import Invocation, StoryRecord

logger = logging.getLogger(__name__)

DEFAULT_TABLE_HEADER = "| Issue | Status | User Story |\n| --- | --- | --- |\n"


# Everything str.splitlines() treats as a line break.
_LINE_BREAKS = re.compile(r"\r\n|[\r\x0b\x0c\x1c-\x1e\x85\u2028\u2029]")

_LINK_TARGET_ESCAPES = str.maketrans({"|": "%7C", "(": "%28", ")": "%29", " ": "%20"})


def _escape_cell(text: str) -> str:
    normalized = _LINE_BREAKS.sub("\n", text).strip()
    escaped = normalized.replace("|", "\\|")
    return "<br>".join(line.rstrip() for line in escaped.split("\n"))


def format_entry(record: StoryRecord) -> str:
    """Render a story as a single markdown table row (without line terminator)."""

    return (
        f"| [#{record.issue_number}]({record.url.translate(_LINK_TARGET_ESCAPES)}) "
        f"| {_escape_cell(record.status)} "
        f"| {_escape_cell(record.content)} |"
    )


def insert_entry(text: str, skip_lines: int, entry: str) -> str:
    """Return `text` with `entry` inserted as its own line after `skip_lines` lines.

    Raises:
        AppenderError: if `skip_lines` is negative or exceeds the number of lines.
    """

    if skip_lines < 0:
        raise AppenderError(f"skip-lines must not be negative; got {skip_lines}")

    # Only \n, \r\n and \r end a line; other Unicode separators stay inside it.
    lines = io.StringIO(text, newline="").readlines()
    if skip_lines > len(lines):
        raise AppenderError(
            f"skip-lines ({skip_lines}) exceeds the number of lines in the file ({len(lines)})"
        )

    newline = "\r\n" if lines and lines[0].endswith("\r\n") else "\n"

    head = lines[:skip_lines]
    if head and not head[-1].endswith(("\n", "\r")):
        head[-1] = head[-1] + newline

    return "".join(head) + entry + newline + "".join(lines[skip_lines:])


def _read_text(path: Path) -> str:
    try:
        with path.open(encoding="utf-8", newline="") as f:
            return f.read()
    except FileNotFoundError as e:
        raise AppenderError(f"story file not found: {path}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise AppenderError(f"story file could not be read: {path} ({e})") from e


def _write_text(path: Path, text: str) -> None:
    try:
        with path.open("w", encoding="utf-8", newline="") as f:
            f.write(text)
    except OSError as e:
        raise AppenderError(f"story file could not be written: {path} ({e})") from e


def init_story_file(path: Path, header: str = DEFAULT_TABLE_HEADER) -> bool:
    """Create the story file with a table header if it does not exist.

    Returns:
        True if the file was created, False if it already existed.
    """

    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    _write_text(path, header)
    logger.info("Story file initialised", extra={"path": str(path)})
    return True


class StoryAppender(ABC):
    """Inserts a story into the story file described by an `Invocation`."""

    @abstractmethod
    def append(self, invocation: Invocation) -> None:
        """Insert `invocation.record` after the header region.

        Raises:
            AppenderError: on any failure; the file must then be left untouched.
        """


class MarkdownTableAppender(StoryAppender):
    """Built-in appender producing one markdown table row per story."""

    def append(self, invocation: Invocation) -> None:
        path = invocation.story_file
        original = _read_text(path)
        entry = format_entry(invocation.record)
        updated = insert_entry(original, invocation.skip_lines, entry)
        _write_text(path, updated)

        logger.info(
            "User story appended",
            extra={
                "path": str(path),
                "issue_number": invocation.record.issue_number,
                "status": invocation.record.status,
                "line": invocation.skip_lines + 1,
            },
        )


class CommandAppender(StoryAppender):
    """Delegates to an external story tool through its command-line contract."""

    def __init__(self, command: str, *, timeout_seconds: float | None = None) -> None:
        argv = shlex.split(command)
        if not argv:
            raise ValueError("appender command is required")
        self._argv = argv
        self._timeout = timeout_seconds or None

    def build_command(self, invocation: Invocation) -> list[str]:
        record = invocation.record
        return [
            *self._argv,
            "--log-level",
            invocation.log_level,
            "--file",
            str(invocation.story_file),
            "--skip-lines",
            str(invocation.skip_lines),
            "create",
            "--issue-number",
            str(record.issue_number),
            "--url",
            record.url,
            "--status",
            record.status,
            "--content",
            record.content,
        ]

    def append(self, invocation: Invocation) -> None:
        cmd = self.build_command(invocation)
        logger.debug("Running external appender", extra={"command": cmd[0]})
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except FileNotFoundError as e:
            raise AppenderError(f"appender command not found: {cmd[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise AppenderError(f"appender command timed out after {self._timeout}s") from e

        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip()
            raise AppenderError(
                f"appender command exited with status {result.returncode}"
                + (f": {detail}" if detail else "")
            )

        logger.info(
            "User story appended by external tool",
            extra={
                "path": str(invocation.story_file),
                "issue_number": invocation.record.issue_number,
            },
        )


def create_appender(settings: PipelineSettings) -> StoryAppender:
    """Pick the appender implementation configured in `settings`."""

    if settings.uses_external_appender:
        return CommandAppender(
            settings.appender_command,
            timeout_seconds=settings.appender_timeout_seconds,
        )
    return MarkdownTableAppender()
