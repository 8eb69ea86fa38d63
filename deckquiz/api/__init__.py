"""HTTP API for deck-quiz."""
