"""
Error taxonomy for lesson scheduling.

Each error is terminal for the action that triggered it and nothing else.
The API layer maps them to HTTP responses; the form keeps its state so the
user can correct the input and try again.
"""

from typing import Optional


class LessonError(Exception):
    """Base class for all scheduling errors."""
    pass


class ValidationError(LessonError):
    """
    The submitted form values are not a valid lesson.

    `reason` is one of the short machine-readable codes below so callers
    can match on it without parsing the message.
    """

    EMPTY_STUDENT = "empty student"
    INVALID_TIME = "invalid time"
    END_BEFORE_START = "end before start"

    def __init__(self, reason: str, message: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(message or reason)


class ConflictError(LessonError):
    """The proposed lesson overlaps an existing one for the same student or coach."""

    def __init__(self, conflicting) -> None:
        self.conflicting = conflicting
        super().__init__(
            f"Conflicts with {conflicting.title} "
            f"(student {conflicting.student}, coach {conflicting.coach})"
        )


class PersistenceError(LessonError):
    """A create, update or delete against the lesson store failed."""
    pass


class LessonNotFoundError(PersistenceError):
    """Raised when an update or delete targets an id the store doesn't have."""
    pass


class AuthError(LessonError):
    """Wrong edit password."""
    pass
