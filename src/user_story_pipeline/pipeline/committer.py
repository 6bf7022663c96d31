"""Change Committer: publish the story file change as a git commit.

The committer stages the documentation subpath, compares it against `HEAD`
and, only when something differs, commits with a fixed message and updates
the remote branch.

Push modes:
- `force` rewrites the remote branch to the new commit. Two concurrent runs
  race and the later push wins, so runs against one branch must be serialized.
- `fail-closed` pushes without force; if the remote has diverged the push is
  rejected and reported as a `CommitError`.

A failed commit or push leaves the working tree modified. Re-running the
pipeline from that state appends the story a second time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from user_story_pipeline.pipeline.config import DEFAULT_COMMIT_MESSAGE, PipelineSettings, PushMode
from user_story_pipeline.pipeline.errors import CommitError
from user_story_pipeline.pipeline.git import GitResult, run_git

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommitOutcome:
    """What the committer did for one run."""

    changed: bool
    commit_sha: str | None = None
    pushed: bool = False


class ChangeCommitter:
    """Stage, diff, commit and push a documentation subpath."""

    def __init__(
        self,
        *,
        repo_path: Path,
        docs_path: str = "docs",
        message: str = DEFAULT_COMMIT_MESSAGE,
        remote: str = "origin",
        branch: str = "main",
        push_mode: PushMode = "force",
        committer_name: str = "",
        committer_email: str = "",
        timeout_seconds: float = 60.0,
    ) -> None:
        if not docs_path.strip():
            raise ValueError("docs_path is required")
        if push_mode not in ("force", "fail-closed"):
            raise ValueError(f"Unsupported push mode: {push_mode}")

        self._repo_path = repo_path
        self._docs_path = docs_path
        self._message = message
        self._remote = remote
        self._branch = branch
        self._push_mode = push_mode
        self._committer_name = committer_name.strip()
        self._committer_email = committer_email.strip()
        self._timeout = timeout_seconds

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> ChangeCommitter:
        return cls(
            repo_path=settings.repo_path,
            docs_path=settings.docs_path,
            message=settings.commit_message,
            remote=settings.remote,
            branch=settings.branch,
            push_mode=settings.push_mode,
            committer_name=settings.committer_name,
            committer_email=settings.committer_email,
            timeout_seconds=settings.git_timeout_seconds,
        )

    def _git(self, args: list[str]) -> GitResult:
        return run_git(args, self._repo_path, timeout=self._timeout)

    def _git_or_fail(self, args: list[str], what: str) -> GitResult:
        result = self._git(args)
        if not result.success:
            raise CommitError(f"git {what} failed", stderr=result.stderr)
        return result

    def _configure_identity(self) -> None:
        if self._committer_name:
            self._git_or_fail(["config", "--local", "user.name", self._committer_name], "config")
        if self._committer_email:
            self._git_or_fail(["config", "--local", "user.email", self._committer_email], "config")

    def has_staged_changes(self) -> bool:
        """Compare the index against HEAD, restricted to the docs subpath."""

        result = self._git(["diff-index", "--quiet", "--cached", "HEAD", "--", self._docs_path])
        if result.timed_out:
            raise CommitError("git diff-index timed out", stderr=result.stderr)
        if result.returncode == 0:
            return False
        if result.returncode == 1:
            return True
        raise CommitError("git diff-index failed", stderr=result.stderr)

    def _push(self) -> None:
        args = ["push"]
        if self._push_mode == "force":
            args.append("--force")
        args.extend([self._remote, f"HEAD:{self._branch}"])

        result = self._git(args)
        if not result.success:
            if self._push_mode == "fail-closed":
                raise CommitError(
                    f"push to {self._remote}/{self._branch} rejected (remote may have diverged)",
                    stderr=result.stderr,
                )
            raise CommitError(f"push to {self._remote}/{self._branch} failed", stderr=result.stderr)

    def commit_if_changed(self) -> CommitOutcome:
        """Commit and push the docs subpath if it differs from HEAD.

        Returns:
            `CommitOutcome(changed=False)` when nothing differs (no commit, no push).

        Raises:
            CommitError: if any git step fails.
        """

        self._configure_identity()
        self._git_or_fail(["add", "--", self._docs_path], "add")

        if not self.has_staged_changes():
            logger.info("No changes detected", extra={"path": self._docs_path})
            return CommitOutcome(changed=False)

        logger.info("Changes detected. Committing...", extra={"path": self._docs_path})
        self._git_or_fail(["commit", "-m", self._message, "--", self._docs_path], "commit")
        sha = self._git_or_fail(["rev-parse", "HEAD"], "rev-parse").stdout.strip()

        self._push()
        logger.info(
            "Changes pushed",
            extra={
                "commit": sha,
                "remote": self._remote,
                "branch": self._branch,
                "push_mode": self._push_mode,
            },
        )
        return CommitOutcome(changed=True, commit_sha=sha, pushed=True)
