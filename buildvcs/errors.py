"""Error hierarchy for the version-control engine.

Every error carries a stable ``kind`` string and a ``context`` dict with the
ids involved, so callers can map failures to user-facing messages without
parsing exception text.
"""

from __future__ import annotations

from typing import Any


class VersionControlError(Exception):
    """Base class for all engine failures."""

    kind = "error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "context": dict(self.context)}


class NotFoundError(VersionControlError):
    """A repository, branch, commit, tag, merge request or comment is missing."""

    kind = "not_found"


class ConflictError(VersionControlError):
    """Head mismatch, duplicate name, or a transition out of a terminal state."""

    kind = "conflict"


class ValidationError(VersionControlError):
    """Missing or inconsistent input."""

    kind = "validation"


class IntegrityError(VersionControlError):
    """A multi-row write could not be persisted atomically and was rolled back."""

    kind = "integrity"


class RetryableError(VersionControlError):
    """Transient persistence failure; the same call may succeed if retried."""

    kind = "retryable"


class ForbiddenError(VersionControlError):
    """The authorization hook refused the operation."""

    kind = "forbidden"
