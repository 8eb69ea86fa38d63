"""
Quiz session module.

This module provides:
- QuestionPool: Read-only snapshot of a deck with streaks and exposure stats
- StratifiedSampler: Difficulty/type stratified session selection
- ExposureOrderer: Least-practised-section-first ordering
- SessionPresenter: MCQ re-labelling with answer maps

Question Types:
- MCQ: Multiple choice (a-d)
- CLOZE: Fill in the blank
- SHORT: Short free-text answer
"""

from .exposure import ExposureOrderer
from .models import (
    DifficultyTier,
    PresentedQuestion,
    QuestionRecord,
    QuestionType,
    SamplingRequest,
    SessionMode,
)
from .pool import QuestionPool
from .presenter import SessionPresenter
from .sampler import StratifiedSampler, create_rng, type_targets

__all__ = [
    "DifficultyTier",
    "ExposureOrderer",
    "PresentedQuestion",
    "QuestionPool",
    "QuestionRecord",
    "QuestionType",
    "SamplingRequest",
    "SessionMode",
    "SessionPresenter",
    "StratifiedSampler",
    "create_rng",
    "type_targets",
]
