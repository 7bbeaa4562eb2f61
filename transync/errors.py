"""Error taxonomy for the synchronization engine.

Pure components (tracker, classifier, merger) never raise these on
well-formed input; they originate at I/O boundaries and at programming
errors detected by the resolver and session.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every error raised by transync."""


class TransientIOError(SyncError):
    """Network hiccup. Retried silently by polling and channel loops."""


class RemoteRejectedError(SyncError):
    """The remote refused the operation (auth expired, ownership, validation)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvariantViolation(SyncError):
    """A caller broke an engine invariant (programming error)."""


class UserCancelled(SyncError):
    """An auth or merge flow was cancelled by the user."""


class MergeInProgressError(SyncError):
    """A merge finalization is already in flight for this session."""


class UnresolvedConflictsError(SyncError):
    """A merge result still has conflicts and cannot be finalized."""

    def __init__(self, keys: list[str]) -> None:
        super().__init__(
            f"{len(keys)} unresolved conflict(s): {', '.join(keys[:5])}"
            + ("..." if len(keys) > 5 else "")
        )
        self.keys = keys


class ContentValidationError(SyncError):
    """Decoded remote content is not a valid translation map."""


class MergeRequired(SyncError):
    """The remote moved on; the local copy must merge before uploading."""
