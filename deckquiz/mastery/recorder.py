"""
Attempt log writer.

Appends one row per graded submission to ``quiz_attempts`` using the single
versioned schema (``ATTEMPT_SCHEMA_VERSION``). Rows are never updated.
Older stores with differently shaped attempt tables are converted once by
``deckquiz.db.migrations``, not adapted to on every write.
"""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from deckquiz.db.models import ATTEMPT_SCHEMA_VERSION, Attempt


class AttemptRecorder:
    """Append-only persistence of graded attempts."""

    def record(
        self,
        session: Session,
        question_id: str,
        deck_id: str,
        user_answer: str,
        is_correct: bool,
    ) -> Attempt:
        attempt = Attempt(
            question_id=question_id,
            deck_id=deck_id,
            user_answer=user_answer or "",
            is_correct=bool(is_correct),
            schema_version=ATTEMPT_SCHEMA_VERSION,
        )
        session.add(attempt)
        session.flush()
        return attempt

    def history(self, session: Session, question_id: str, limit: int = 20) -> list[Attempt]:
        """Most recent attempts for a question, newest first."""
        return list(
            session.execute(
                select(Attempt)
                .where(Attempt.question_id == question_id)
                .order_by(Attempt.created_at.desc())
                .limit(limit)
            ).scalars()
        )
