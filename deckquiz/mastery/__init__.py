"""
Mastery tracking.

- MasteryTracker: per-question streak state machine with atomic upsert
- AttemptRecorder: append-only attempt log
"""

from .recorder import AttemptRecorder
from .tracker import MasteryTracker, MasteryUpdate, is_completed, is_mastered, next_streak

__all__ = [
    "AttemptRecorder",
    "MasteryTracker",
    "MasteryUpdate",
    "is_completed",
    "is_mastered",
    "next_streak",
]
