"""Configuration for the story ingestion pipeline.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

The variable names match the ones the CI workflow exports (`USER_STORY_*`,
`MK_USERNAME`, `MK_EMAIL`), so the same settings object serves the workflow,
the CLI and the webhook server. Values here are process-wide defaults; the
manual dispatch form may override log level, file and skip-lines per run.
A relative story file is taken relative to `repo_path`, not the process cwd.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS: tuple[str, ...] = ("debug", "info", "warning", "error", "critical")

DEFAULT_STORY_FILE = Path("docs/user-stories/README.md")
DEFAULT_COMMIT_MESSAGE = "Updated User Stories [auto-built]"

PushMode = Literal["force", "fail-closed"]


def normalize_log_level(value: str) -> str:
    """Return the lower-case log level, or raise ValueError if it is unknown."""

    level = value.strip().lower()
    if level not in LOG_LEVELS:
        raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}; got {value!r}")
    return level


class PipelineSettings(BaseSettings):
    """Settings for the story ingestion pipeline.

    Environment variables:
    - USER_STORY_FILE, USER_STORY_LOG_LEVEL, USER_STORY_SKIP_LINES
    - USER_STORY_CREATE_STATUS, USER_STORY_LABEL
    - USER_STORY_APPENDER_COMMAND, USER_STORY_APPENDER_TIMEOUT  (optional)
    - USER_STORY_REPO_PATH, USER_STORY_DOCS_PATH, USER_STORY_COMMIT_MESSAGE
    - MK_USERNAME, MK_EMAIL  (committer identity, optional)
    - USER_STORY_REMOTE, USER_STORY_BRANCH, USER_STORY_PUSH_MODE, USER_STORY_GIT_TIMEOUT
    - USER_STORY_GITHUB_TOKEN, GITHUB_BASE_URL  (only for `import-issue`)
    - USER_STORY_WEBHOOK_SECRET  (only for the webhook server)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `PipelineSettings(_env_file=None)`.
    """

    story_file: Path = Field(
        default=DEFAULT_STORY_FILE,
        validation_alias="USER_STORY_FILE",
        description="Markdown file user stories are inserted into",
    )
    log_level: str = Field(
        default="error",
        validation_alias="USER_STORY_LOG_LEVEL",
        description="Default log level (debug | info | warning | error | critical)",
    )
    skip_lines: int = Field(
        default=2,
        ge=0,
        validation_alias="USER_STORY_SKIP_LINES",
        description="Number of header lines left untouched at the top of the story file",
    )
    create_status: str = Field(
        default="In-Progress",
        validation_alias="USER_STORY_CREATE_STATUS",
        description="Status assigned to stories created from issue events",
    )
    story_label: str = Field(
        default="user-story",
        validation_alias="USER_STORY_LABEL",
        description="Issue label that marks an issue as a user story",
    )

    appender_command: str = Field(
        default="",
        validation_alias="USER_STORY_APPENDER_COMMAND",
        description=(
            "External appender command (e.g. 'user_story'). Empty means the built-in "
            "markdown table appender is used."
        ),
    )
    appender_timeout_seconds: float = Field(
        default=0.0,
        ge=0,
        validation_alias="USER_STORY_APPENDER_TIMEOUT",
        description="Timeout for the external appender command (0 means no timeout)",
    )

    repo_path: Path = Field(
        default=Path("."),
        validation_alias="USER_STORY_REPO_PATH",
        description="Root of the git working tree the committer operates on",
    )
    docs_path: str = Field(
        default="docs",
        validation_alias="USER_STORY_DOCS_PATH",
        description="Subpath (relative to repo_path) staged and compared by the committer",
    )
    commit_message: str = Field(
        default=DEFAULT_COMMIT_MESSAGE,
        validation_alias="USER_STORY_COMMIT_MESSAGE",
    )
    committer_name: str = Field(default="", validation_alias="MK_USERNAME")
    committer_email: str = Field(default="", validation_alias="MK_EMAIL")
    remote: str = Field(default="origin", validation_alias="USER_STORY_REMOTE")
    branch: str = Field(default="main", validation_alias="USER_STORY_BRANCH")
    push_mode: PushMode = Field(
        default="force",
        validation_alias="USER_STORY_PUSH_MODE",
        description=(
            "'force' overwrites the remote branch (concurrent runs must be serialized); "
            "'fail-closed' rejects the push when the remote has diverged."
        ),
    )
    git_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        validation_alias="USER_STORY_GIT_TIMEOUT",
    )

    github_token: str = Field(
        default="",
        validation_alias="USER_STORY_GITHUB_TOKEN",
        description="GitHub token used by `import-issue`",
    )
    github_base_url: str = Field(
        default="https://api.github.com",
        validation_alias="GITHUB_BASE_URL",
        description="GitHub API base URL (useful for GitHub Enterprise)",
    )

    webhook_secret: str = Field(
        default="",
        validation_alias="USER_STORY_WEBHOOK_SECRET",
        description="Shared secret for X-Hub-Signature-256 verification (empty disables it)",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        return normalize_log_level(value)

    def resolve_story_path(self, path: str | Path) -> Path:
        """Anchor a relative story file path at `repo_path`, the tree the committer publishes."""

        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        return self.repo_path / candidate

    @property
    def story_path(self) -> Path:
        return self.resolve_story_path(self.story_file)

    @property
    def uses_external_appender(self) -> bool:
        return bool(self.appender_command.strip())
