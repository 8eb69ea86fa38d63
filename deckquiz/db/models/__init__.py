# SQLAlchemy models
from .base import Base
from .quiz import (
    ATTEMPT_SCHEMA_VERSION,
    Attempt,
    Deck,
    MasteryState,
    Question,
)

__all__ = [
    # Base
    "Base",
    # Quiz
    "Deck",
    "Question",
    "MasteryState",
    "Attempt",
    "ATTEMPT_SCHEMA_VERSION",
]
