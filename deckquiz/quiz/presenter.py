"""
Session presentation.

MCQ options are shuffled and re-labelled a-d on every presentation, with an
answer map (new label -> stored label) so the correct letter cannot be read
off the position. Within one session the same correct label is not allowed
to come up three times in a row; the shuffle is retried a bounded number of
times to avoid that.
"""
from __future__ import annotations

import random
from typing import Iterable

from deckquiz.quiz.models import (
    OPTION_LETTERS,
    PresentedQuestion,
    QuestionRecord,
    QuestionType,
)

MAX_RELABEL_ATTEMPTS = 10


class SessionPresenter:
    """Turns sampled questions into presentable items for one session."""

    def __init__(self, rng: random.Random):
        self.rng = rng
        self._correct_labels: list[str] = []

    def present_all(self, questions: Iterable[QuestionRecord]) -> list[PresentedQuestion]:
        return [self.present(q) for q in questions]

    def present(self, question: QuestionRecord) -> PresentedQuestion:
        if question.type is not QuestionType.MCQ:
            return PresentedQuestion(
                id=question.id,
                deck_id=question.deck_id,
                type=question.type,
                prompt=question.prompt,
                options=dict(question.options),
            )

        options, answer_map = self._relabel(question)
        return PresentedQuestion(
            id=question.id,
            deck_id=question.deck_id,
            type=question.type,
            prompt=question.prompt,
            options=options,
            answer_map=answer_map,
        )

    def _relabel(self, question: QuestionRecord) -> tuple[dict[str, str], dict[str, str]]:
        stored = question.correct_answer.strip().lower()
        entries = [(letter, question.options.get(letter, "")) for letter in OPTION_LETTERS]

        for _ in range(MAX_RELABEL_ATTEMPTS):
            shuffled = entries[:]
            self.rng.shuffle(shuffled)
            options = {new: text for new, (_, text) in zip(OPTION_LETTERS, shuffled)}
            answer_map = {new: orig for new, (orig, _) in zip(OPTION_LETTERS, shuffled)}
            correct_label = next((new for new, orig in answer_map.items() if orig == stored), "a")
            if not self._repeats_third_time(correct_label):
                break

        self._correct_labels.append(correct_label)
        return options, answer_map

    def _repeats_third_time(self, label: str) -> bool:
        return len(self._correct_labels) >= 2 and self._correct_labels[-1] == label == self._correct_labels[-2]
