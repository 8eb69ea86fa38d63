"""
Quiz models for decks, questions, mastery and the attempt log.

Implements:
- Deck: Named container owning a set of generated questions
- Question: Generated question record (MCQ, CLOZE, SHORT)
- MasteryState: Per-question consecutive-correct streak
- Attempt: Append-only log of graded submissions

Question options JSON is always the four-letter map:

    {"a": "...", "b": "...", "c": "...", "d": "..."}

For CLOZE and SHORT questions all four values are empty strings.

Tags prefixed with ``section:`` mark syllabus sections used for exposure
balancing when sessions are sampled.
"""
from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

# Bump when the attempts table changes shape; legacy rows are rewritten by
# deckquiz.db.migrations.migrate_legacy_store.
ATTEMPT_SCHEMA_VERSION = 1


def _new_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Deck(Base):
    """A deck of questions generated from one pasted source text."""

    __tablename__ = "quiz_decks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    source_text: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    questions: Mapped[list[Question]] = relationship(
        "Question",
        back_populates="deck",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Deck(id={self.id}, name={self.name!r})>"


class Question(Base):
    """
    Generated question. Immutable once stored; deck regeneration deletes and
    recreates all questions of a deck.
    """

    __tablename__ = "quiz_questions"
    __table_args__ = (
        CheckConstraint("difficulty BETWEEN 1 AND 5", name="ck_quiz_questions_difficulty"),
        CheckConstraint("type IN ('MCQ', 'CLOZE', 'SHORT')", name="ck_quiz_questions_type"),
        Index("ix_quiz_questions_deck_id", "deck_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    deck_id: Mapped[str] = mapped_column(
        ForeignKey("quiz_decks.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(String(8), nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[dict] = mapped_column(JSON, default=dict)
    correct_answer: Mapped[str] = mapped_column(Text, default="")
    explanation: Mapped[str] = mapped_column(Text, default="")
    tags: Mapped[list] = mapped_column(JSON, default=list)
    difficulty: Mapped[int] = mapped_column(Integer, default=3, nullable=False)

    deck: Mapped[Deck] = relationship("Deck", back_populates="questions")
    mastery: Mapped[MasteryState | None] = relationship(
        "MasteryState",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )

    def __repr__(self) -> str:
        return f"<Question(type={self.type}, difficulty={self.difficulty})>"


class MasteryState(Base):
    """Consecutive-correct streak for one question. Source of truth for mastery."""

    __tablename__ = "quiz_mastery_states"

    question_id: Mapped[str] = mapped_column(
        ForeignKey("quiz_questions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<MasteryState(question={self.question_id}, streak={self.streak})>"


class Attempt(Base):
    """One graded submission. Never updated; removed only with its deck."""

    __tablename__ = "quiz_attempts"
    __table_args__ = (
        Index("ix_quiz_attempts_question_id", "question_id"),
        Index("ix_quiz_attempts_deck_id", "deck_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    question_id: Mapped[str] = mapped_column(
        ForeignKey("quiz_questions.id", ondelete="CASCADE"),
        nullable=False,
    )
    deck_id: Mapped[str] = mapped_column(
        ForeignKey("quiz_decks.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_answer: Mapped[str] = mapped_column(Text, default="")
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    schema_version: Mapped[int] = mapped_column(
        Integer, default=ATTEMPT_SCHEMA_VERSION, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Attempt(question={self.question_id}, correct={self.is_correct})>"
