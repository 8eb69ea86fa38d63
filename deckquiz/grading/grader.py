"""
Answer grading.

Tiers, tried in order:

- exact: normalized (trimmed, lowercased, whitespace-collapsed) equality
- delegate: semantic verdict from the grading service (CLOZE/SHORT only)
- fuzzy: Levenshtein distance <= max(1, 10% of the longer string)

MCQ answers are single letters, so they get the exact tier only; any two of
a-d are one edit apart and fuzzy matching would accept every option.
A delegate failure never fails the submission; the heuristic result stands.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from loguru import logger
from rapidfuzz.distance import Levenshtein

from deckquiz.exceptions import DelegateUnavailable
from deckquiz.grading.delegate import SemanticGradingDelegate
from deckquiz.grading.rationale import parse_option_rationales
from deckquiz.quiz.models import QuestionRecord, QuestionType

FUZZY_MAX_DISTANCE = 1
FUZZY_MAX_RATIO = 0.10


class GradingMethod(str, Enum):
    """Which tier decided the result."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    DELEGATE = "delegate"
    MISMATCH = "mismatch"


@dataclass
class GradeResult:
    """Result of grading one submission."""

    is_correct: bool
    explanation: str
    method: GradingMethod = GradingMethod.EXACT
    distance: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_correct": self.is_correct,
            "explanation": self.explanation,
            "method": self.method.value,
            "distance": self.distance,
        }


def normalize_answer(text: str | None) -> str:
    """Trim, lowercase and collapse internal whitespace."""
    return " ".join((text or "").split()).lower()


def fuzzy_limit(a: str, b: str) -> int:
    """Largest edit distance still accepted as a close match."""
    return max(FUZZY_MAX_DISTANCE, math.floor(FUZZY_MAX_RATIO * max(len(a), len(b))))


def is_close_match(user: str, correct: str) -> tuple[bool, int]:
    """Bounded edit-distance test on already-normalized strings."""
    limit = fuzzy_limit(user, correct)
    distance = Levenshtein.distance(user, correct)
    return distance <= limit, distance


def _shown_label(
    question: QuestionRecord,
    stored_label: str,
    answer_map: Mapping[str, str] | None,
) -> str:
    """Quote an answer the way the learner saw it."""
    if not answer_map or question.type is not QuestionType.MCQ:
        return f"'{stored_label}'"
    key = normalize_answer(stored_label)
    presented = {normalize_answer(v): k for k, v in answer_map.items()}.get(key)
    if presented is None:
        return f"'{stored_label}'"
    text = question.options.get(key, "").strip()
    return f"'{presented}' ({text})" if text else f"'{presented}'"


def build_explanation(
    question: QuestionRecord,
    user_answer: str,
    is_correct: bool,
    delegate_explanation: str | None = None,
    answer_map: Mapping[str, str] | None = None,
) -> str:
    """
    Compose the feedback text for one submission.

    A delegate explanation wins. Otherwise per-option rationale (``a) ...``)
    parsed from the stored explanation is quoted for the submitted and the
    correct option; without any, the stored explanation is appended.

    ``answer_map`` (presented label -> stored label) makes MCQ feedback quote
    the labels and option text the learner was shown.
    """
    if delegate_explanation:
        return delegate_explanation

    rationales = parse_option_rationales(question.explanation)
    correct = question.correct_answer.strip()
    submitted = user_answer.strip()
    correct_key = normalize_answer(correct)
    submitted_key = normalize_answer(submitted)
    correct_why = rationales.get(correct_key)
    submitted_why = rationales.get(submitted_key)

    correct_shown = _shown_label(question, correct, answer_map)
    if is_correct:
        if correct_why:
            return correct_why
        parts = [f"{correct_shown} is correct."]
    else:
        shown = _shown_label(question, submitted, answer_map) if submitted else "(blank)"
        wrong = f"Your answer {shown} is incorrect"
        right = f"The correct answer is {correct_shown}"
        parts = [
            f"{wrong}: {submitted_why}" if submitted_why else f"{wrong}.",
            f"{right}: {correct_why}" if correct_why else f"{right}.",
        ]

    if not rationales and question.explanation.strip():
        parts.append(question.explanation.strip())
    return " ".join(parts)


class AnswerGrader:
    """Grades submissions for MCQ, CLOZE and SHORT questions."""

    def __init__(self, delegate: SemanticGradingDelegate | None = None):
        """
        Args:
            delegate: Optional semantic grading service for CLOZE/SHORT
        """
        self.delegate = delegate

    def grade(
        self,
        question: QuestionRecord,
        user_answer: str,
        answer_map: Mapping[str, str] | None = None,
    ) -> GradeResult:
        """Grade ``user_answer`` (stored labels for MCQ); ``answer_map`` only shapes the feedback."""
        user = normalize_answer(user_answer)
        correct = normalize_answer(question.correct_answer)

        if user == correct:
            return self._result(question, user_answer, True, GradingMethod.EXACT, distance=0, answer_map=answer_map)

        if question.type is QuestionType.MCQ or not user:
            return self._result(question, user_answer, False, GradingMethod.MISMATCH, answer_map=answer_map)

        close, distance = is_close_match(user, correct)
        heuristic = GradingMethod.FUZZY if close else GradingMethod.MISMATCH

        if self.delegate is not None and self.delegate.enabled:
            try:
                verdict = self.delegate.judge(question.prompt, question.correct_answer, user_answer)
            except DelegateUnavailable as e:
                logger.warning(f"Semantic grading unavailable for {question.id}, using heuristic: {e}")
            else:
                return GradeResult(
                    is_correct=verdict.correct,
                    explanation=build_explanation(
                        question, user_answer, verdict.correct, verdict.explanation
                    ),
                    method=GradingMethod.DELEGATE,
                    distance=distance,
                )

        return self._result(question, user_answer, close, heuristic, distance=distance)

    def _result(
        self,
        question: QuestionRecord,
        user_answer: str,
        is_correct: bool,
        method: GradingMethod,
        distance: int | None = None,
        answer_map: Mapping[str, str] | None = None,
    ) -> GradeResult:
        return GradeResult(
            is_correct=is_correct,
            explanation=build_explanation(question, user_answer, is_correct, answer_map=answer_map),
            method=method,
            distance=distance,
        )
