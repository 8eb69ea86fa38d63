"""
Domain types for quiz sessions.

Question Types:
- MCQ: Multiple choice with four labelled options a-d
- CLOZE: Fill in the blank
- SHORT: Free-text short answer

Session Modes:
- Mixed: Whole deck
- Weak / Due: Only questions not yet mastered (streak below threshold)

Difficulty Tiers:
- easy: difficulty 1-2
- medium: difficulty 3
- hard: difficulty 4-5
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

OPTION_LETTERS = ("a", "b", "c", "d")
SECTION_TAG_PREFIX = "section:"
DEFAULT_DIFFICULTY = 3
MASTERED_STREAK = 2
COMPLETED_STREAK = 1


class QuestionType(str, Enum):
    """Question format."""

    MCQ = "MCQ"
    CLOZE = "CLOZE"
    SHORT = "SHORT"


class SessionMode(str, Enum):
    """Which part of the deck a session draws from."""

    MIXED = "Mixed"
    WEAK = "Weak"
    DUE = "Due"

    @property
    def unmastered_only(self) -> bool:
        return self in (SessionMode.WEAK, SessionMode.DUE)


class DifficultyTier(str, Enum):
    """Difficulty band used for stratified sampling."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @classmethod
    def for_difficulty(cls, difficulty: int) -> DifficultyTier:
        if difficulty <= 2:
            return cls.EASY
        if difficulty == 3:
            return cls.MEDIUM
        return cls.HARD


# Default session mix: half MCQ, a quarter each of cloze and short answer
DEFAULT_TYPE_RATIOS: dict[QuestionType, float] = {
    QuestionType.MCQ: 0.5,
    QuestionType.CLOZE: 0.25,
    QuestionType.SHORT: 0.25,
}


def empty_options() -> dict[str, str]:
    return {letter: "" for letter in OPTION_LETTERS}


@dataclass(frozen=True)
class QuestionRecord:
    """Read-only question as the sampler and grader see it."""

    id: str
    deck_id: str
    type: QuestionType
    prompt: str
    options: dict[str, str] = field(default_factory=empty_options)
    correct_answer: str = ""
    explanation: str = ""
    tags: tuple[str, ...] = ()
    difficulty: int = DEFAULT_DIFFICULTY

    @property
    def tier(self) -> DifficultyTier:
        return DifficultyTier.for_difficulty(self.difficulty)

    @property
    def section_tags(self) -> tuple[str, ...]:
        return tuple(t for t in self.tags if t.startswith(SECTION_TAG_PREFIX))

    @classmethod
    def from_row(cls, row: Any) -> QuestionRecord:
        """Build from a ``Question`` ORM row, defaulting absent difficulty and tags."""
        options = dict(row.options or {})
        return cls(
            id=str(row.id),
            deck_id=str(row.deck_id),
            type=QuestionType(row.type),
            prompt=row.prompt or "",
            options={letter: str(options.get(letter) or "") for letter in OPTION_LETTERS},
            correct_answer=str(row.correct_answer or ""),
            explanation=str(row.explanation or ""),
            tags=tuple(dict.fromkeys(row.tags or [])),
            difficulty=int(row.difficulty) if row.difficulty is not None else DEFAULT_DIFFICULTY,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "deck_id": self.deck_id,
            "type": self.type.value,
            "prompt": self.prompt,
            "options": dict(self.options),
            "correct_answer": self.correct_answer,
            "explanation": self.explanation,
            "tags": list(self.tags),
            "difficulty": self.difficulty,
        }


@dataclass
class SamplingRequest:
    """Parameters of one session draw."""

    count: int
    mode: SessionMode = SessionMode.MIXED
    tier: DifficultyTier | None = None
    ratios: Mapping[QuestionType, float] = field(default_factory=lambda: dict(DEFAULT_TYPE_RATIOS))


@dataclass
class PresentedQuestion:
    """A question as served to the learner. MCQ labels are re-shuffled."""

    id: str
    deck_id: str
    type: QuestionType
    prompt: str
    options: dict[str, str]
    answer_map: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "deck_id": self.deck_id,
            "type": self.type.value,
            "prompt": self.prompt,
            "options": dict(self.options),
        }
        if self.answer_map is not None:
            data["answer_map"] = dict(self.answer_map)
        return data
