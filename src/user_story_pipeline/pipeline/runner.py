"""Chain the pipeline stages for one resolved trigger."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from user_story_pipeline.pipeline.appender import StoryAppender
from user_story_pipeline.pipeline.committer import ChangeCommitter, CommitOutcome
from user_story_pipeline.pipeline.models import Invocation

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PipelineResult:
    issue_number: int
    commit: CommitOutcome | None

    @property
    def committed(self) -> bool:
        return self.commit is not None and self.commit.changed


def run_pipeline(
    invocation: Invocation,
    *,
    appender: StoryAppender,
    committer: ChangeCommitter | None,
) -> PipelineResult:
    """Append the story, then commit the result (unless `committer` is None).

    Errors from either stage propagate unchanged; there is no retry and no
    rollback of the appended story.
    """

    logger.info(
        "Running user story pipeline",
        extra={
            "issue_number": invocation.record.issue_number,
            "source": invocation.source,
            "path": str(invocation.story_file),
        },
    )
    appender.append(invocation)

    outcome = committer.commit_if_changed() if committer is not None else None
    return PipelineResult(issue_number=invocation.record.issue_number, commit=outcome)
