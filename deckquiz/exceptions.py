"""
Error taxonomy for quiz sessions and grading.

- ValidationError: malformed request or out-of-range parameter (never retried)
- NotFoundError: unknown deck or question id
- DelegateUnavailable: semantic grading service missing, failing or timing out
- PersistenceError: storage write failure during a submission
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from deckquiz.grading.grader import GradeResult


class DeckQuizError(Exception):
    """Base class for all deck-quiz errors."""
    pass


class ValidationError(DeckQuizError):
    """Raised when a request parameter is malformed or out of range."""
    pass


class NotFoundError(DeckQuizError):
    """Raised when a deck or question id does not exist."""

    def __init__(self, kind: str, key: str):
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class DelegateUnavailable(DeckQuizError):
    """Raised by the semantic grading delegate; always recovered by the grader."""
    pass


class PersistenceError(DeckQuizError):
    """
    Raised when the mastery upsert fails.

    The grading judgment was computed before the write, so it travels with
    the error and the caller still sees it.
    """

    def __init__(self, message: str, grade: GradeResult | None = None):
        super().__init__(message)
        self.grade = grade
