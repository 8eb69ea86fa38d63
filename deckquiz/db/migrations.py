"""
One-time migration of a legacy study store into the quiz_* tables.

Older installs kept their data in four loosely typed SQLite tables:

    Decks(id, name, source_text, createdAt)
    Questions(id, deckId, type, prompt, options JSON text, correct_answer,
              explanation, tags comma-joined, difficulty)
    Mastery(questionId, correctCount)
    Attempts(id TEXT or INTEGER, questionId, [deckId], userAnswer,
             correct | isCorrect, ts | timestamp | createdAt | created_at | time)

The Attempts table in particular drifted between installs. Its columns are
introspected once here and every row is rewritten into the single versioned
``quiz_attempts`` schema; the write path never looks at column variants.

Re-running is safe: rows whose ids already exist are skipped.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import pydantic
from loguru import logger
from sqlalchemy import inspect, select, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session, sessionmaker

from deckquiz.db.database import session_scope
from deckquiz.db.models import ATTEMPT_SCHEMA_VERSION, Attempt, Deck, MasteryState, Question
from deckquiz.db.queries import ImportedQuestion, insert_question

LEGACY_TABLES = ("Decks", "Questions", "Mastery", "Attempts")

# Column aliases seen across legacy installs, first match wins
DECK_COLUMNS = {"created_at": ("createdAt", "created_at")}
QUESTION_COLUMNS = {"deck_id": ("deckId", "deck_id")}
MASTERY_COLUMNS = {
    "question_id": ("questionId", "question_id"),
    "streak": ("correctCount", "streak"),
}
ATTEMPT_COLUMNS = {
    "question_id": ("questionId", "question_id"),
    "deck_id": ("deckId", "deck_id"),
    "user_answer": ("userAnswer", "user_answer"),
    "is_correct": ("correct", "isCorrect", "is_correct"),
    "created_at": ("ts", "timestamp", "createdAt", "created_at", "time"),
}


@dataclass
class MigrationReport:
    """Counts of rows copied from the legacy store."""

    legacy_tables: list[str] = field(default_factory=list)
    decks: int = 0
    questions: int = 0
    mastery: int = 0
    attempts: int = 0
    skipped: int = 0
    dropped: bool = False

    @property
    def found(self) -> bool:
        return bool(self.legacy_tables)

    def to_dict(self) -> dict[str, Any]:
        return {
            "legacy_tables": list(self.legacy_tables),
            "decks": self.decks,
            "questions": self.questions,
            "mastery": self.mastery,
            "attempts": self.attempts,
            "skipped": self.skipped,
            "dropped": self.dropped,
        }


def _resolve(columns: set[str], aliases: dict[str, tuple[str, ...]]) -> dict[str, str | None]:
    return {
        target: next((name for name in candidates if name in columns), None)
        for target, candidates in aliases.items()
    }


def _parse_timestamp(value: Any) -> datetime:
    """Epoch seconds / milliseconds or ISO text; current time when unreadable."""
    if value is None or value == "":
        return datetime.now(timezone.utc)
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            value = int(stripped)
        else:
            try:
                parsed = datetime.fromisoformat(stripped.replace("Z", "+00:00"))
            except ValueError:
                return datetime.now(timezone.utc)
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    number = float(value)
    if number > 1e11:
        number /= 1000.0
    return datetime.fromtimestamp(number, tz=timezone.utc)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "t", "yes")
    return bool(value)


def _parse_json(value: Any) -> Any:
    if not isinstance(value, str) or not value.strip():
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return None


def _parse_tags(value: Any) -> Any:
    """Comma-joined text, or a JSON list in some exports."""
    if isinstance(value, str) and value.lstrip().startswith("["):
        return _parse_json(value)
    return value


def _clamp_difficulty(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return min(5, max(1, int(value)))


def _attempt_id(raw: Any) -> str:
    # INTEGER primary keys would collide with generated hex ids
    if isinstance(raw, int):
        return f"legacy-{raw}"
    return str(raw)


def _rows(conn: Connection, table: str) -> list[dict[str, Any]]:
    return [dict(row) for row in conn.execute(text(f'SELECT * FROM "{table}"')).mappings()]


def find_legacy_tables(engine: Engine) -> dict[str, set[str]]:
    """Legacy table name -> column names, for the legacy tables present."""
    inspector = inspect(engine)
    present = set(inspector.get_table_names())
    return {
        table: {col["name"] for col in inspector.get_columns(table)}
        for table in LEGACY_TABLES
        if table in present
    }


def migrate_legacy_store(engine: Engine, drop_legacy: bool = False) -> MigrationReport:
    """
    Copy a legacy store into the quiz_* tables.

    Args:
        engine: Engine bound to the database holding both schemas
        drop_legacy: Drop the legacy tables once everything is copied

    Returns:
        MigrationReport with per-table counts
    """
    report = MigrationReport()
    legacy = find_legacy_tables(engine)
    report.legacy_tables = sorted(legacy)
    if not legacy:
        logger.info("No legacy tables found, nothing to migrate")
        return report

    with engine.connect() as conn:
        rows = {table: _rows(conn, table) for table in legacy}

    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    with session_scope(factory) as session:
        deck_ids = _copy_decks(session, legacy, rows, report)
        question_decks = _copy_questions(session, legacy, rows, deck_ids, report)
        _copy_mastery(session, legacy, rows, question_decks, report)
        _copy_attempts(session, legacy, rows, question_decks, report)

    if drop_legacy:
        with engine.begin() as conn:
            for table in reversed(LEGACY_TABLES):
                if table in legacy:
                    conn.execute(text(f'DROP TABLE "{table}"'))
        report.dropped = True

    logger.info(
        f"Legacy migration: {report.decks} decks, {report.questions} questions, "
        f"{report.mastery} mastery rows, {report.attempts} attempts ({report.skipped} skipped)"
    )
    return report


def _copy_decks(
    session: Session,
    legacy: dict[str, set[str]],
    rows: dict[str, list[dict[str, Any]]],
    report: MigrationReport,
) -> set[str]:
    existing = set(session.scalars(select(Deck.id)))
    if "Decks" not in legacy:
        return existing

    cols = _resolve(legacy["Decks"], DECK_COLUMNS)
    for row in rows["Decks"]:
        deck_id = str(row["id"])
        if deck_id in existing:
            continue
        session.add(
            Deck(
                id=deck_id,
                name=str(row.get("name") or deck_id),
                source_text=str(row.get("source_text") or ""),
                created_at=_parse_timestamp(row.get(cols["created_at"]) if cols["created_at"] else None),
            )
        )
        existing.add(deck_id)
        report.decks += 1
    session.flush()
    return existing


def _copy_questions(
    session: Session,
    legacy: dict[str, set[str]],
    rows: dict[str, list[dict[str, Any]]],
    deck_ids: set[str],
    report: MigrationReport,
) -> dict[str, str]:
    """Returns question id -> deck id for every question now stored."""
    question_decks = dict(session.execute(select(Question.id, Question.deck_id)).tuples().all())
    if "Questions" not in legacy:
        return question_decks

    cols = _resolve(legacy["Questions"], QUESTION_COLUMNS)
    for row in rows["Questions"]:
        question_id = str(row["id"])
        deck_id = str(row.get(cols["deck_id"]) or "") if cols["deck_id"] else ""
        if question_id in question_decks:
            continue
        if deck_id not in deck_ids:
            report.skipped += 1
            continue
        try:
            record = ImportedQuestion.model_validate(
                {
                    "id": question_id,
                    "type": row.get("type"),
                    "prompt": row.get("prompt"),
                    "options": _parse_json(row.get("options")),
                    "correct_answer": str(row.get("correct_answer") or ""),
                    "explanation": str(row.get("explanation") or ""),
                    "tags": _parse_tags(row.get("tags")),
                    "difficulty": _clamp_difficulty(row.get("difficulty")),
                }
            )
        except (pydantic.ValidationError, TypeError, ValueError) as e:
            logger.warning(f"Skipping legacy question {question_id}: {e}")
            report.skipped += 1
            continue
        insert_question(session, deck_id, record)
        question_decks[question_id] = deck_id
        report.questions += 1
    session.flush()
    return question_decks


def _copy_mastery(
    session: Session,
    legacy: dict[str, set[str]],
    rows: dict[str, list[dict[str, Any]]],
    question_decks: dict[str, str],
    report: MigrationReport,
) -> None:
    if "Mastery" not in legacy:
        return
    cols = _resolve(legacy["Mastery"], MASTERY_COLUMNS)
    if cols["question_id"] is None:
        return

    existing = set(session.scalars(select(MasteryState.question_id)))
    for row in rows["Mastery"]:
        question_id = str(row[cols["question_id"]])
        if question_id in existing:
            continue
        if question_id not in question_decks:
            report.skipped += 1
            continue
        streak = int(row.get(cols["streak"]) or 0) if cols["streak"] else 0
        session.add(MasteryState(question_id=question_id, streak=max(0, streak)))
        existing.add(question_id)
        report.mastery += 1
    session.flush()


def _copy_attempts(
    session: Session,
    legacy: dict[str, set[str]],
    rows: dict[str, list[dict[str, Any]]],
    question_decks: dict[str, str],
    report: MigrationReport,
) -> None:
    if "Attempts" not in legacy:
        return
    cols = _resolve(legacy["Attempts"], ATTEMPT_COLUMNS)
    if cols["question_id"] is None:
        logger.warning("Legacy Attempts table has no question column, skipping")
        return

    existing = set(session.scalars(select(Attempt.id)))
    for row in rows["Attempts"]:
        question_id = str(row[cols["question_id"]])
        deck_id = question_decks.get(question_id)
        if deck_id is None:
            report.skipped += 1
            continue
        attempt_id = _attempt_id(row["id"]) if row.get("id") is not None else None
        if attempt_id in existing:
            continue

        attempt = Attempt(
            question_id=question_id,
            deck_id=deck_id,
            user_answer=str(row.get(cols["user_answer"]) or "") if cols["user_answer"] else "",
            is_correct=_parse_bool(row.get(cols["is_correct"])) if cols["is_correct"] else False,
            created_at=_parse_timestamp(row.get(cols["created_at"]) if cols["created_at"] else None),
            schema_version=ATTEMPT_SCHEMA_VERSION,
        )
        if attempt_id:
            attempt.id = attempt_id
            existing.add(attempt_id)
        session.add(attempt)
        report.attempts += 1
    session.flush()
