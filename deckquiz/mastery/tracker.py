"""
Mastery streak tracking.

Each question carries one counter: consecutive correct gradings.

    New (no row) == Streak(0)
    correct:   Streak(n) -> Streak(n + 1)
    incorrect: Streak(n) -> Streak(0)

``mastered`` (streak >= 2) and ``completed`` (streak >= 1) are derived, never
stored. The read-modify-write is one ``INSERT ... ON CONFLICT DO UPDATE``
keyed by question id, so two sessions answering the same question at once
cannot lose an increment.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from deckquiz.db.models import MasteryState
from deckquiz.quiz.models import COMPLETED_STREAK, MASTERED_STREAK

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def next_streak(streak: int, is_correct: bool) -> int:
    """Apply one grading outcome to a streak."""
    return max(0, streak) + 1 if is_correct else 0


def is_mastered(streak: int, threshold: int = MASTERED_STREAK) -> bool:
    return streak >= threshold


def is_completed(streak: int) -> bool:
    return streak >= COMPLETED_STREAK


@dataclass
class MasteryUpdate:
    """Streak after one grading event."""

    question_id: str
    streak: int
    mastered: bool
    completed: bool


class MasteryTracker:
    """Applies grading outcomes to persisted streaks."""

    def __init__(self, mastered_threshold: int = MASTERED_STREAK):
        self.mastered_threshold = mastered_threshold

    def current(self, session: Session, question_id: str) -> int:
        streak = session.execute(
            select(MasteryState.streak).where(MasteryState.question_id == question_id)
        ).scalar_one_or_none()
        return streak or 0

    def record(self, session: Session, question_id: str, is_correct: bool) -> MasteryUpdate:
        """Upsert the streak for ``question_id`` and return the new state."""
        dialect = session.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is not None:
            streak = self._upsert(session, insert, question_id, is_correct)
        else:
            streak = self._locked_update(session, question_id, is_correct)

        return MasteryUpdate(
            question_id=question_id,
            streak=streak,
            mastered=is_mastered(streak, self.mastered_threshold),
            completed=is_completed(streak),
        )

    def _upsert(self, session: Session, insert, question_id: str, is_correct: bool) -> int:
        now = datetime.now(timezone.utc)
        stmt = insert(MasteryState).values(
            question_id=question_id,
            streak=next_streak(0, is_correct),
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[MasteryState.question_id],
            set_={
                "streak": MasteryState.streak + 1 if is_correct else 0,
                "updated_at": now,
            },
        ).returning(MasteryState.streak)
        return int(session.execute(stmt).scalar_one())

    def _locked_update(self, session: Session, question_id: str, is_correct: bool) -> int:
        # Dialects without ON CONFLICT: row lock, then write
        state = session.get(MasteryState, question_id, with_for_update=True)
        if state is None:
            state = MasteryState(question_id=question_id, streak=0)
            session.add(state)
        state.streak = next_streak(state.streak, is_correct)
        session.flush()
        return state.streak
