"""Database engine, sessions and SQLAlchemy models."""
