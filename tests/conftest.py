"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
# Set test environment variables BEFORE any imports that might use them
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_FILE"] = ""
os.environ["GRADING_DELEGATE_MODE"] = "disabled"

import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy.orm import sessionmaker

from deckquiz.db.database import build_engine, init_db, session_scope
from deckquiz.db.models import Deck, Question
from deckquiz.quiz.models import QuestionRecord, QuestionType


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-memory database)")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# ========================================
# Question builders
# ========================================


def _make_record(
    qid,
    qtype=QuestionType.MCQ,
    difficulty=3,
    tags=(),
    correct_answer=None,
    explanation="",
    deck_id="deck-1",
):
    """Build a QuestionRecord with sensible defaults per type."""
    if qtype is QuestionType.MCQ:
        options = {"a": "Paris", "b": "Lyon", "c": "Marseille", "d": "Nice"}
        answer = "a" if correct_answer is None else correct_answer
    else:
        options = {"a": "", "b": "", "c": "", "d": ""}
        answer = "Paris" if correct_answer is None else correct_answer
    return QuestionRecord(
        id=qid,
        deck_id=deck_id,
        type=qtype,
        prompt=f"Prompt for {qid}",
        options=options,
        correct_answer=answer,
        explanation=explanation,
        tags=tuple(tags),
        difficulty=difficulty,
    )


def _store_deck(factory, deck_id, records, name="Test deck"):
    """Persist a deck and its QuestionRecords."""
    with session_scope(factory) as session:
        session.add(Deck(id=deck_id, name=name))
        session.flush()
        for record in records:
            session.add(
                Question(
                    id=record.id,
                    deck_id=deck_id,
                    type=record.type.value,
                    prompt=record.prompt,
                    options=dict(record.options),
                    correct_answer=record.correct_answer,
                    explanation=record.explanation,
                    tags=list(record.tags),
                    difficulty=record.difficulty,
                )
            )


# ========================================
# Database fixtures
# ========================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with all tables."""
    test_engine = build_engine("sqlite://")
    init_db(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def file_session_factory(tmp_path):
    """File-backed SQLite database, for tests that need real connection concurrency."""
    file_engine = build_engine(f"sqlite:///{tmp_path / 'quiz.db'}")
    init_db(file_engine)
    yield sessionmaker(bind=file_engine, autoflush=False, expire_on_commit=False)
    file_engine.dispose()


@pytest.fixture
def session(session_factory):
    db_session = session_factory()
    yield db_session
    db_session.rollback()
    db_session.close()


@pytest.fixture
def sample_records():
    """10 MCQ + 10 SHORT questions spread over all difficulties."""
    mcq = [
        _make_record(f"mcq-{i:02d}", QuestionType.MCQ, difficulty=(i % 5) + 1)
        for i in range(10)
    ]
    short = [
        _make_record(f"short-{i:02d}", QuestionType.SHORT, difficulty=(i % 5) + 1)
        for i in range(10)
    ]
    return mcq + short


@pytest.fixture
def stored_deck(session_factory, sample_records):
    """Deck 'deck-1' holding sample_records."""
    _store_deck(session_factory, "deck-1", sample_records)
    return "deck-1"


@pytest.fixture
def make_record():
    """Factory for QuestionRecord test data."""
    return _make_record


@pytest.fixture
def store_deck(session_factory):
    """Persist a deck: ``store_deck(deck_id, records)``."""

    def _store(deck_id, records, name="Test deck", factory=None):
        _store_deck(factory or session_factory, deck_id, records, name=name)
        return deck_id

    return _store
