"""Exceptions raised by the pipeline stages.

Every failure is terminal for the run; the CLI maps these to exit codes.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for pipeline failures."""


class TriggerValidationError(PipelineError):
    """A required trigger field is missing or malformed."""


class AppenderError(PipelineError):
    """The story could not be inserted into the target file."""


class CommitError(PipelineError):
    """A git operation or the push to the remote failed."""

    def __init__(self, message: str, *, stderr: str = "") -> None:
        super().__init__(message)
        self.stderr = stderr

    def __str__(self) -> str:
        base = super().__str__()
        detail = self.stderr.strip()
        return f"{base}: {detail}" if detail else base
