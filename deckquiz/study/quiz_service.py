"""
Quiz Service.

Orchestrates the two learner-facing operations:

- start_session: load the deck pool, sample, present
- submit_answer: grade, update the streak, log the attempt

plus the read-side helpers used by the API and CLI (question lookup, deck
progress, question import).

Write ordering on submit:

    grade (no I/O besides the optional delegate)
      -> mastery upsert      (own transaction; failure = PersistenceError)
      -> attempt append      (own transaction; failure = degraded result)

The judgment is never lost: a failed mastery write carries it on the
exception, a failed attempt write is reported with ``degraded=True``.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from config import Settings, get_settings
from deckquiz.db.database import SessionLocal, session_scope
from deckquiz.db.models import Deck
from deckquiz.db.queries import (
    DeckProgress,
    create_deck,
    deck_progress,
    get_deck,
    get_question,
    import_questions,
)
from deckquiz.exceptions import NotFoundError, PersistenceError, ValidationError
from deckquiz.grading import AnswerGrader, GradingMethod, SemanticGradingDelegate, normalize_answer
from deckquiz.mastery import AttemptRecorder, MasteryTracker
from deckquiz.quiz import (
    DifficultyTier,
    PresentedQuestion,
    QuestionPool,
    QuestionRecord,
    QuestionType,
    SamplingRequest,
    SessionMode,
    SessionPresenter,
    StratifiedSampler,
    create_rng,
    type_targets,
)
from deckquiz.quiz.models import DEFAULT_TYPE_RATIOS, MASTERED_STREAK


@dataclass
class SubmitResult:
    """Outcome of one submitted answer."""

    question_id: str
    is_correct: bool
    correct_answer: str
    explanation: str
    method: GradingMethod
    streak: int
    mastered: bool
    completed: bool
    degraded: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_id": self.question_id,
            "is_correct": self.is_correct,
            "correct_answer": self.correct_answer,
            "explanation": self.explanation,
            "method": self.method.value,
            "streak": self.streak,
            "mastered": self.mastered,
            "completed": self.completed,
            "degraded": self.degraded,
        }


def parse_mode(mode: str | SessionMode | None) -> SessionMode:
    if mode is None or mode == "":
        return SessionMode.MIXED
    if isinstance(mode, SessionMode):
        return mode
    for candidate in SessionMode:
        if candidate.value.lower() == str(mode).strip().lower():
            return candidate
    raise ValidationError(f"unknown mode '{mode}' (expected Mixed, Weak or Due)")


def parse_tier(difficulty: str | DifficultyTier | None) -> DifficultyTier | None:
    if difficulty is None or isinstance(difficulty, DifficultyTier):
        return difficulty
    value = str(difficulty).strip().lower()
    if value in ("", "any", "mixed"):
        return None
    try:
        return DifficultyTier(value)
    except ValueError:
        raise ValidationError(f"unknown difficulty '{difficulty}' (expected easy, medium or hard)") from None


def parse_ratios(ratios: Mapping[str, float] | None) -> dict[QuestionType, float]:
    if not ratios:
        return dict(DEFAULT_TYPE_RATIOS)
    parsed: dict[QuestionType, float] = {}
    for key, weight in ratios.items():
        try:
            qtype = key if isinstance(key, QuestionType) else QuestionType(str(key).strip().upper())
        except ValueError:
            raise ValidationError(f"unknown question type in ratios: '{key}'") from None
        try:
            parsed[qtype] = float(weight)
        except (TypeError, ValueError):
            raise ValidationError(f"ratio for {qtype.value} must be a number, got {weight!r}") from None
    # Validates sign and sum before anything is loaded
    type_targets(1, parsed)
    return parsed


class QuizService:
    """Start sessions and grade submissions against the quiz store."""

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        grader: AnswerGrader | None = None,
        sampler: StratifiedSampler | None = None,
        tracker: MasteryTracker | None = None,
        recorder: AttemptRecorder | None = None,
        seed: int | str | None = None,
        default_count: int = 10,
        max_count: int = 100,
    ):
        """
        Args:
            session_factory: Sessionmaker for the quiz store (default: SessionLocal)
            grader: Answer grader, optionally with a semantic delegate
            sampler: Session sampler
            tracker: Streak tracker
            recorder: Attempt log writer
            seed: Fixed seed making successive sessions reproducible
            default_count: Session size when the caller gives none
            max_count: Upper bound on session size
        """
        self.session_factory = session_factory or SessionLocal
        self.grader = grader or AnswerGrader()
        self.sampler = sampler or StratifiedSampler()
        self.tracker = tracker or MasteryTracker()
        self.recorder = recorder or AttemptRecorder()
        self.default_count = default_count
        self.max_count = max_count
        self._rng = create_rng(seed) if seed is not None else None

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        session_factory: sessionmaker | None = None,
    ) -> QuizService:
        settings = settings or get_settings()
        threshold = settings.quiz_mastered_threshold or MASTERED_STREAK
        return cls(
            session_factory=session_factory,
            grader=AnswerGrader(delegate=SemanticGradingDelegate.from_settings(settings)),
            sampler=StratifiedSampler(mastered_threshold=threshold),
            tracker=MasteryTracker(mastered_threshold=threshold),
            seed=settings.quiz_random_seed,
            default_count=settings.quiz_default_count,
            max_count=settings.quiz_max_count,
        )

    # ========================================
    # Sessions
    # ========================================

    def start_session(
        self,
        deck_id: str,
        count: int | None = None,
        mode: str | SessionMode | None = SessionMode.MIXED,
        difficulty: str | DifficultyTier | None = None,
        ratios: Mapping[str, float] | None = None,
        seed: int | str | None = None,
    ) -> list[PresentedQuestion]:
        """
        Sample and present a quiz session for a deck.

        Raises:
            ValidationError: bad mode, difficulty, ratios or count
            NotFoundError: unknown deck
        """
        count = self._check_count(count)
        request = SamplingRequest(
            count=count,
            mode=parse_mode(mode),
            tier=parse_tier(difficulty),
            ratios=parse_ratios(ratios),
        )

        with session_scope(self.session_factory) as session:
            get_deck(session, deck_id)
            pool = QuestionPool.load(session, deck_id)

        rng = self._session_rng(seed)
        ids = self.sampler.sample(pool, request, rng)
        by_id = {q.id: q for q in pool}
        presented = SessionPresenter(rng).present_all(by_id[qid] for qid in ids)

        logger.info(
            f"Session for deck {deck_id}: {len(presented)}/{count} questions "
            f"(mode={request.mode.value}, pool={len(pool)})"
        )
        return presented

    def _check_count(self, count: int | None) -> int:
        if count is None:
            return self.default_count
        if isinstance(count, bool) or not isinstance(count, int):
            raise ValidationError(f"count must be an integer, got {count!r}")
        if count < 1:
            raise ValidationError(f"count must be positive, got {count}")
        if count > self.max_count:
            logger.debug(f"Requested count {count} capped at {self.max_count}")
            return self.max_count
        return count

    def _session_rng(self, seed: int | str | None) -> random.Random:
        if seed is not None:
            return create_rng(seed)
        if self._rng is not None:
            return self._rng
        return create_rng()

    # ========================================
    # Submissions
    # ========================================

    def submit_answer(
        self,
        question_id: str,
        user_answer: str | None,
        answer_map: Mapping[str, str] | None = None,
    ) -> SubmitResult:
        """
        Grade one answer and record it.

        Args:
            question_id: Stored question id
            user_answer: Raw answer text (MCQ: a presented label)
            answer_map: Presented label -> stored label, as served with the question

        Raises:
            NotFoundError: unknown question id
            PersistenceError: the streak could not be written (carries the grade)
        """
        with session_scope(self.session_factory) as session:
            question = QuestionRecord.from_row(get_question(session, question_id))

        answer = self._translate(question, user_answer or "", answer_map)
        grade = self.grader.grade(question, answer, answer_map=answer_map)

        try:
            with session_scope(self.session_factory) as session:
                update = self.tracker.record(session, question.id, grade.is_correct)
        except SQLAlchemyError as e:
            logger.exception(f"Mastery update failed for question {question.id}")
            raise PersistenceError(f"Could not update mastery for {question.id}", grade=grade) from e

        degraded = False
        try:
            with session_scope(self.session_factory) as session:
                self.recorder.record(session, question.id, question.deck_id, answer, grade.is_correct)
        except SQLAlchemyError as e:
            logger.error(f"Attempt log write failed for question {question.id}: {e}")
            degraded = True

        return SubmitResult(
            question_id=question.id,
            is_correct=grade.is_correct,
            correct_answer=question.correct_answer,
            explanation=grade.explanation,
            method=grade.method,
            streak=update.streak,
            mastered=update.mastered,
            completed=update.completed,
            degraded=degraded,
        )

    @staticmethod
    def _translate(
        question: QuestionRecord,
        user_answer: str,
        answer_map: Mapping[str, str] | None,
    ) -> str:
        if not answer_map or question.type is not QuestionType.MCQ:
            return user_answer
        lookup = {normalize_answer(k): v for k, v in answer_map.items()}
        return lookup.get(normalize_answer(user_answer), user_answer)

    # ========================================
    # Read side
    # ========================================

    def get_question(self, question_id: str) -> QuestionRecord:
        with session_scope(self.session_factory) as session:
            return QuestionRecord.from_row(get_question(session, question_id))

    def deck_progress(self, deck_id: str) -> DeckProgress:
        with session_scope(self.session_factory) as session:
            return deck_progress(session, deck_id, self.tracker.mastered_threshold)

    def import_deck(
        self,
        deck_id: str,
        records: Iterable[dict[str, Any]],
        name: str | None = None,
        replace: bool = False,
    ) -> int:
        """Store generated questions, creating the deck when ``name`` is given."""
        with session_scope(self.session_factory) as session:
            if session.get(Deck, deck_id) is None:
                if not name:
                    raise NotFoundError("deck", deck_id)
                create_deck(session, name, deck_id=deck_id)
            stored = import_questions(session, deck_id, records, replace=replace)
            logger.info(f"Imported {len(stored)} questions into deck {deck_id}")
            return len(stored)
