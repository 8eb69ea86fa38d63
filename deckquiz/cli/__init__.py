"""Command-line interface for deck-quiz."""
