"""Test configuration and fixtures."""

from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Iterator
from pathlib import Path

import pytest

from user_story_pipeline.pipeline.config import PipelineSettings

STORY_HEADER = "| Issue | Status | User Story |\n| --- | --- | --- |\n"

_ENV_VARS = (
    "USER_STORY_FILE",
    "USER_STORY_LOG_LEVEL",
    "USER_STORY_SKIP_LINES",
    "USER_STORY_CREATE_STATUS",
    "USER_STORY_LABEL",
    "USER_STORY_APPENDER_COMMAND",
    "USER_STORY_APPENDER_TIMEOUT",
    "USER_STORY_REPO_PATH",
    "USER_STORY_DOCS_PATH",
    "USER_STORY_COMMIT_MESSAGE",
    "USER_STORY_REMOTE",
    "USER_STORY_BRANCH",
    "USER_STORY_PUSH_MODE",
    "USER_STORY_GIT_TIMEOUT",
    "USER_STORY_GITHUB_TOKEN",
    "USER_STORY_WEBHOOK_SECRET",
    "GITHUB_BASE_URL",
    "GITHUB_EVENT_NAME",
    "GITHUB_EVENT_PATH",
    "MK_USERNAME",
    "MK_EMAIL",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep the developer's / CI runner's environment out of settings."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def _restore_root_logging() -> Iterator[None]:
    """`configure_logging` swaps root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-C", str(cwd), *args],
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def _init_repo(path: Path) -> None:
    git(path.parent, "init", str(path))
    git(path, "symbolic-ref", "HEAD", "refs/heads/main")
    git(path, "config", "user.name", "Test Author")
    git(path, "config", "user.email", "author@example.com")
    git(path, "config", "commit.gpgsign", "false")


@pytest.fixture
def git_cli():
    """Provide the `git` helper to tests."""
    return git


@pytest.fixture
def story_file(tmp_path: Path) -> Path:
    """Provide a story file with the default two-line table header."""
    path = tmp_path / "docs" / "user-stories" / "README.md"
    path.parent.mkdir(parents=True)
    path.write_text(STORY_HEADER, encoding="utf-8")
    return path


@pytest.fixture
def remote_repo(tmp_path: Path) -> Path:
    """Provide an empty bare repository acting as `origin`."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    remote = tmp_path / "remote.git"
    git(tmp_path, "init", "--bare", str(remote))
    git(remote, "symbolic-ref", "HEAD", "refs/heads/main")
    return remote


@pytest.fixture
def work_repo(tmp_path: Path, remote_repo: Path) -> Path:
    """Provide a working tree with the story file committed and pushed to `origin/main`."""
    repo = tmp_path / "work"
    repo.mkdir()
    _init_repo(repo)

    story = repo / "docs" / "user-stories" / "README.md"
    story.parent.mkdir(parents=True)
    story.write_text(STORY_HEADER, encoding="utf-8")
    (repo / "README.md").write_text("# Project\n", encoding="utf-8")

    git(repo, "add", "-A")
    git(repo, "commit", "-m", "Initial commit")
    git(repo, "remote", "add", "origin", str(remote_repo))
    git(repo, "push", "origin", "main")
    return repo


@pytest.fixture
def settings(work_repo: Path) -> PipelineSettings:
    """Provide settings pointing at the working tree fixture."""
    return PipelineSettings(
        _env_file=None,
        story_file=work_repo / "docs" / "user-stories" / "README.md",
        log_level="debug",
        repo_path=work_repo,
        committer_name="Story Bot",
        committer_email="story-bot@example.com",
    )
