"""
deck-quiz: adaptive quiz sampling and mastery tracking for study decks.
"""

__version__ = "1.0.0"
