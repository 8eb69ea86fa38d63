"""
Deck and question queries shared by the quiz service and the CLI.

Usage:
    from deckquiz.db.queries import get_question, import_questions

    with session_scope() as session:
        deck = create_deck(session, "Networking basics")
        import_questions(session, deck.id, records)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

import pydantic
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from deckquiz.db.models import Attempt, Deck, MasteryState, Question
from deckquiz.exceptions import NotFoundError, ValidationError
from deckquiz.quiz.models import (
    COMPLETED_STREAK,
    DEFAULT_DIFFICULTY,
    MASTERED_STREAK,
    OPTION_LETTERS,
    QuestionType,
    empty_options,
)


# =============================================================================
# IMPORT SCHEMA
# =============================================================================


class ImportedQuestion(BaseModel):
    """One question record as produced by a question generator."""

    id: str | None = Field(None, description="Keep the generator's id if it has one")
    type: QuestionType
    prompt: str = Field(..., min_length=1)
    options: dict[str, str] = Field(default_factory=empty_options)
    correct_answer: str = ""
    explanation: str = ""
    tags: list[str] = Field(default_factory=list)
    difficulty: int = Field(DEFAULT_DIFFICULTY, ge=1, le=5)

    @field_validator("type", mode="before")
    @classmethod
    def _upper_type(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, value: Any) -> Any:
        # Generators sometimes emit the four choices as a list
        if value is None:
            return empty_options()
        if isinstance(value, (list, tuple)):
            return {letter: str(text) for letter, text in zip(OPTION_LETTERS, value)}
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        return value

    @field_validator("difficulty", mode="before")
    @classmethod
    def _default_difficulty(cls, value: Any) -> Any:
        return DEFAULT_DIFFICULTY if value is None else value

    @model_validator(mode="after")
    def _check_shape(self) -> ImportedQuestion:
        self.tags = list(dict.fromkeys(self.tags))
        if self.type is QuestionType.MCQ:
            unknown = set(self.options) - set(OPTION_LETTERS)
            if unknown:
                raise ValueError(f"unknown option labels: {sorted(unknown)}")
            self.options = {letter: self.options.get(letter, "") for letter in OPTION_LETTERS}
            answer = self.correct_answer.strip().lower()
            if answer not in OPTION_LETTERS:
                raise ValueError("MCQ correct_answer must be one of a-d")
            self.correct_answer = answer
        else:
            self.options = empty_options()
            if not self.correct_answer.strip():
                raise ValueError(f"{self.type.value} question needs a correct_answer")
        return self


# =============================================================================
# DECKS & QUESTIONS
# =============================================================================


def create_deck(session: Session, name: str, source_text: str = "", deck_id: str | None = None) -> Deck:
    deck = Deck(name=name, source_text=source_text)
    if deck_id:
        deck.id = deck_id
    session.add(deck)
    session.flush()
    return deck


def get_deck(session: Session, deck_id: str) -> Deck:
    """Raises NotFoundError for an unknown deck id."""
    deck = session.get(Deck, deck_id)
    if deck is None:
        raise NotFoundError("deck", deck_id)
    return deck


def get_question(session: Session, question_id: str) -> Question:
    """Raises NotFoundError for an unknown question id."""
    question = session.get(Question, question_id)
    if question is None:
        raise NotFoundError("question", question_id)
    return question


def insert_question(session: Session, deck_id: str, record: ImportedQuestion) -> Question:
    question = Question(
        deck_id=deck_id,
        type=record.type.value,
        prompt=record.prompt,
        options=dict(record.options),
        correct_answer=record.correct_answer,
        explanation=record.explanation,
        tags=list(record.tags),
        difficulty=record.difficulty,
    )
    if record.id:
        question.id = record.id
    session.add(question)
    return question


def import_questions(
    session: Session,
    deck_id: str,
    records: Iterable[dict[str, Any] | ImportedQuestion],
    replace: bool = False,
) -> list[Question]:
    """
    Store generated questions in a deck.

    Args:
        session: Open session (caller commits)
        deck_id: Existing deck id
        records: Raw dicts or already validated ImportedQuestion items
        replace: Delete the deck's current questions first (regeneration)

    Raises:
        NotFoundError: unknown deck
        ValidationError: an invalid record; nothing is stored
    """
    deck = get_deck(session, deck_id)
    validated = []
    for index, record in enumerate(records):
        if isinstance(record, ImportedQuestion):
            validated.append(record)
            continue
        try:
            validated.append(ImportedQuestion.model_validate(record))
        except pydantic.ValidationError as e:
            raise ValidationError(f"question #{index}: {e.errors()[0]['msg']}") from e

    if replace:
        deck.questions.clear()
        session.flush()

    stored = [insert_question(session, deck.id, record) for record in validated]
    session.flush()
    return stored


# =============================================================================
# PROGRESS
# =============================================================================


@dataclass
class DeckProgress:
    """Mastery summary for one deck."""

    deck_id: str
    total: int
    completed: int
    mastered: int
    attempts: int
    correct_attempts: int

    @property
    def unmastered(self) -> int:
        return self.total - self.mastered

    @property
    def accuracy(self) -> float:
        if self.attempts == 0:
            return 0.0
        return round(self.correct_attempts / self.attempts, 4)

    def to_dict(self) -> dict[str, Any]:
        return {
            "deck_id": self.deck_id,
            "total": self.total,
            "completed": self.completed,
            "mastered": self.mastered,
            "unmastered": self.unmastered,
            "attempts": self.attempts,
            "accuracy": self.accuracy,
        }


def deck_progress(
    session: Session,
    deck_id: str,
    mastered_threshold: int = MASTERED_STREAK,
) -> DeckProgress:
    """Count completed/mastered questions and attempt accuracy for a deck."""
    get_deck(session, deck_id)

    streak = func.coalesce(MasteryState.streak, 0)
    total, completed, mastered = session.execute(
        select(
            func.count(Question.id),
            func.coalesce(func.sum(case((streak >= COMPLETED_STREAK, 1), else_=0)), 0),
            func.coalesce(func.sum(case((streak >= mastered_threshold, 1), else_=0)), 0),
        )
        .select_from(Question)
        .outerjoin(MasteryState, MasteryState.question_id == Question.id)
        .where(Question.deck_id == deck_id)
    ).one()

    attempts, correct = session.execute(
        select(
            func.count(Attempt.id),
            func.coalesce(func.sum(case((Attempt.is_correct, 1), else_=0)), 0),
        ).where(Attempt.deck_id == deck_id)
    ).one()

    return DeckProgress(
        deck_id=deck_id,
        total=int(total),
        completed=int(completed),
        mastered=int(mastered),
        attempts=int(attempts),
        correct_attempts=int(correct),
    )
