"""GitHub API client wrapper.

Wraps PyGithub to keep GitHub calls out of CLI code and make tests easy. Only
the `import-issue` command talks to the API; event-driven runs get everything
they need from the webhook payload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from github import Auth, Github
from github.Repository import Repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IssueDetails:
    """Issue fields needed to build a story."""

    repository: str
    number: int
    html_url: str
    body: str
    state: str
    labels: list[str] = field(default_factory=list)

    def as_payload(self) -> dict[str, Any]:
        """Return the issue in webhook payload shape (`issue` object)."""

        return {
            "number": self.number,
            "html_url": self.html_url,
            "body": self.body,
            "state": self.state,
            "labels": [{"name": name} for name in self.labels],
        }


class GitHubClient:
    """Small wrapper around PyGithub for the issue lookups the pipeline needs."""

    def __init__(
        self,
        *,
        token: str,
        repository: str,
        base_url: str = "https://api.github.com",
        repo: Repository | None = None,
        github_api: Github | None = None,
    ) -> None:
        if not token:
            raise ValueError("GitHub token is required")
        if not repository.strip().strip("/"):
            raise ValueError("GitHub repository is required")

        self._repository_name = repository.strip().strip("/")

        if repo is not None:
            self._repo = repo
            self._github = None
            logger.debug("Using injected Repository instance")
            return

        auth = Auth.Token(token)
        self._github = github_api or Github(auth=auth, base_url=base_url.rstrip("/"))

        self._repo = self._github.get_repo(self._repository_name)
        logger.info(
            "Authenticated with GitHub and connected to repository",
            extra={"repo": self._repository_name},
        )

    @property
    def repository(self) -> str:
        """Return the configured repository name ("owner/repo")."""

        return self._repository_name

    def get_issue(self, *, issue_number: int) -> IssueDetails:
        if issue_number <= 0:
            raise ValueError("issue_number must be a positive integer")

        issue = self._repo.get_issue(number=issue_number)
        labels = [label.name for label in issue.labels if getattr(label, "name", None)]
        return IssueDetails(
            repository=self._repository_name,
            number=issue.number,
            html_url=issue.html_url,
            body=issue.body or "",
            state=getattr(issue, "state", "open"),
            labels=labels,
        )

    def close(self) -> None:
        if self._github is not None:
            self._github.close()
