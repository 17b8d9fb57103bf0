"""Exception taxonomy for a sync run.

Only terminal conditions escape a run: NetworkError once the retry
budget is spent, ConcurrentRunError, ConfigurationError, and internal
failures (GitCommandError, MergeCommitError, InvalidDecisionError).
Conflict and integrity findings travel as data in the StatusReport.
"""

from __future__ import annotations


class ForkSyncError(Exception):
    """Base class for all forksync errors."""

    retryable = False

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class NetworkError(ForkSyncError):
    """Fetch failed on timeout, DNS, or authentication."""

    retryable = True


class ConcurrentRunError(ForkSyncError):
    """Another run holds the workspace lock."""


class MergeCommitError(ForkSyncError):
    """The real merge could not be committed cleanly."""


class InvalidDecisionError(ForkSyncError):
    """AutomatedMerger was handed a decision it must not execute."""


class IntegrityValidationFailure(ForkSyncError):
    """Post-merge validation found the protected feature damaged.

    Raised inside AutomatedMerger to trigger rollback; never leaves
    the merger.
    """


class ConfigurationError(ForkSyncError):
    """Protected-area or run configuration is missing or invalid."""


class GitCommandError(ForkSyncError):
    """A git command failed in a way the caller did not expect."""

    def __init__(self, command: str, exited: int, stderr: str = ""):
        super().__init__(
            f"git command failed: {command}",
            exited=exited,
            stderr=stderr.strip()[:500],
        )
        self.command = command
        self.exited = exited
        self.stderr = stderr


__all__ = [
    "ForkSyncError",
    "NetworkError",
    "ConcurrentRunError",
    "MergeCommitError",
    "InvalidDecisionError",
    "IntegrityValidationFailure",
    "ConfigurationError",
    "GitCommandError",
]
