"""Git command runner with timeout handling."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GitResult:
    """Result of a git command."""

    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def run_git(args: list[str], cwd: Path, timeout: float) -> GitResult:
    """Run `git -C <cwd> <args>` and capture its output.

    A missing git binary propagates as FileNotFoundError; a timeout is reported
    through `GitResult.timed_out` instead of raising.
    """

    cmd = ["git", "-C", str(cwd), *args]
    logger.debug("Running git", extra={"git_args": args})
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return GitResult(
            returncode=-1,
            stdout="",
            stderr=f"Command timed out after {timeout}s",
            timed_out=True,
        )
    return GitResult(returncode=result.returncode, stdout=result.stdout, stderr=result.stderr)
