"""API routers for deck-quiz."""

from deckquiz.api.routers import quiz_router

__all__ = [
    "quiz_router",
]
