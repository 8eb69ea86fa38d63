"""
Question pool for a deck.

Read-only snapshot of a deck's questions together with their current streaks
and exposure statistics (attempts per question and per ``section:`` tag). The
sampler works on this snapshot only, so concurrent sessions share no mutable
state.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterator

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from deckquiz.db.models import Attempt, MasteryState, Question
from deckquiz.quiz.exposure import ExposureOrderer
from deckquiz.quiz.models import QuestionRecord


@dataclass(frozen=True)
class QuestionPool:
    """Questions of one deck plus derived per-question stats."""

    deck_id: str
    questions: tuple[QuestionRecord, ...] = ()
    streaks: dict[str, int] = field(default_factory=dict)
    question_attempts: dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.questions)

    def __iter__(self) -> Iterator[QuestionRecord]:
        return iter(self.questions)

    def streak(self, question_id: str) -> int:
        return self.streaks.get(question_id, 0)

    @property
    def section_attempts(self) -> dict[str, int]:
        """Attempt counts folded onto each question's ``section:`` tags."""
        counts: Counter[str] = Counter()
        for question in self.questions:
            attempts = self.question_attempts.get(question.id, 0)
            for tag in question.section_tags:
                counts[tag] += attempts
        return dict(counts)

    def exposure_orderer(self) -> ExposureOrderer:
        return ExposureOrderer(self.section_attempts)

    @classmethod
    def load(cls, session: Session, deck_id: str) -> QuestionPool:
        """Load a deck's questions, streaks and attempt counts in two queries."""
        rows = session.execute(
            select(Question, func.coalesce(MasteryState.streak, 0))
            .outerjoin(MasteryState, MasteryState.question_id == Question.id)
            .where(Question.deck_id == deck_id)
            .order_by(Question.id)
        ).all()

        attempt_rows = session.execute(
            select(Attempt.question_id, func.count(Attempt.id))
            .where(Attempt.deck_id == deck_id)
            .group_by(Attempt.question_id)
        ).all()

        questions = tuple(QuestionRecord.from_row(row) for row, _ in rows)
        streaks = {str(row.id): int(streak) for row, streak in rows}

        return cls(
            deck_id=deck_id,
            questions=questions,
            streaks=streaks,
            question_attempts={str(qid): int(n) for qid, n in attempt_rows},
        )
