"""
Exposure ordering for session candidates.

A question's exposure score is the smallest historical attempt count among its
``section:`` tags, so a question touching any under-practised section surfaces
early. Questions without a section tag score 0.
"""
from __future__ import annotations

import random
from typing import Iterable, Mapping

from deckquiz.quiz.models import QuestionRecord


class ExposureOrderer:
    """Orders candidates least-exposed first, ties randomized."""

    def __init__(self, section_attempts: Mapping[str, int] | None = None):
        """
        Args:
            section_attempts: Attempt count per ``section:`` tag
        """
        self.section_attempts = dict(section_attempts or {})

    def score(self, question: QuestionRecord) -> int:
        sections = question.section_tags
        if not sections:
            return 0
        return min(self.section_attempts.get(tag, 0) for tag in sections)

    def order(self, questions: Iterable[QuestionRecord], rng: random.Random) -> list[QuestionRecord]:
        """Shuffle, then stable-sort ascending by exposure score."""
        ordered = list(questions)
        rng.shuffle(ordered)
        ordered.sort(key=self.score)
        return ordered
