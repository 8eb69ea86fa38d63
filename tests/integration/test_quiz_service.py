"""
Integration tests for QuizService against an in-memory SQLite store.

Covers StartSession and SubmitAnswer end to end, including the degraded
attempt write and the PersistenceError path.
"""

from collections import Counter

import pytest
from sqlalchemy.exc import OperationalError

from deckquiz.db.database import session_scope
from deckquiz.db.models import Attempt, MasteryState
from deckquiz.exceptions import NotFoundError, PersistenceError, ValidationError
from deckquiz.grading import GradingMethod
from deckquiz.mastery import AttemptRecorder, MasteryTracker
from deckquiz.quiz import QuestionType
from deckquiz.study import QuizService


class FailingRecorder(AttemptRecorder):
    def record(self, session, question_id, deck_id, user_answer, is_correct):
        raise OperationalError("INSERT INTO quiz_attempts", {}, Exception("disk I/O error"))


class FailingTracker(MasteryTracker):
    def record(self, session, question_id, is_correct):
        raise OperationalError("INSERT INTO quiz_mastery_states", {}, Exception("database is locked"))


@pytest.fixture
def service(session_factory):
    return QuizService(session_factory=session_factory, seed=1234)


def _streak(session_factory, question_id):
    with session_scope(session_factory) as session:
        state = session.get(MasteryState, question_id)
        return state.streak if state else 0


class TestStartSession:
    def test_mixed_session(self, service, stored_deck):
        questions = service.start_session(stored_deck, count=8)

        ids = [q.id for q in questions]
        types = Counter(q.type for q in questions)
        assert len(ids) == 8
        assert len(set(ids)) == 8
        assert types[QuestionType.MCQ] >= 4
        assert types[QuestionType.SHORT] >= 2

    def test_mcq_items_carry_answer_map(self, service, stored_deck):
        questions = service.start_session(stored_deck, count=20)

        for question in questions:
            if question.type is QuestionType.MCQ:
                assert sorted(question.answer_map) == ["a", "b", "c", "d"]
            else:
                assert question.answer_map is None

    def test_seed_replays_session(self, service, stored_deck):
        first = [q.id for q in service.start_session(stored_deck, count=6, seed="learner-1")]
        second = [q.id for q in service.start_session(stored_deck, count=6, seed="learner-1")]
        assert first == second

    def test_default_count(self, session_factory, stored_deck):
        service = QuizService(session_factory=session_factory, default_count=5)
        assert len(service.start_session(stored_deck)) == 5

    def test_count_capped(self, session_factory, stored_deck):
        service = QuizService(session_factory=session_factory, max_count=3)
        assert len(service.start_session(stored_deck, count=50)) == 3

    def test_difficulty_filter(self, service, stored_deck, sample_records):
        difficulty = {r.id: r.difficulty for r in sample_records}
        questions = service.start_session(stored_deck, count=20, difficulty="easy")
        assert questions
        assert all(difficulty[q.id] <= 2 for q in questions)

    def test_weak_mode_skips_mastered(self, service, stored_deck):
        for _ in range(2):
            service.submit_answer("short-00", "Paris")

        for _ in range(5):
            ids = [q.id for q in service.start_session(stored_deck, count=20, mode="Weak")]
            assert "short-00" not in ids
            assert len(ids) == 19

    def test_unknown_deck(self, service):
        with pytest.raises(NotFoundError):
            service.start_session("no-such-deck", count=5)

    def test_empty_deck_gives_empty_session(self, service, store_deck):
        store_deck("empty-deck", [])
        assert service.start_session("empty-deck", count=5) == []

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"count": 0},
            {"count": -3},
            {"mode": "Sometimes"},
            {"difficulty": "brutal"},
            {"ratios": {"ESSAY": 1.0}},
            {"ratios": {"MCQ": 0, "CLOZE": 0, "SHORT": 0}},
            {"ratios": {"MCQ": float("nan")}},
            {"ratios": {"MCQ": "lots"}},
        ],
    )
    def test_invalid_requests(self, service, stored_deck, kwargs):
        params = {"count": 5, **kwargs}
        with pytest.raises(ValidationError):
            service.start_session(stored_deck, **params)


class TestSubmitAnswer:
    def test_streak_progression(self, service, stored_deck, session_factory):
        # Bring the question to streak 1 first
        service.submit_answer("short-01", "Paris")
        assert _streak(session_factory, "short-01") == 1

        result = service.submit_answer("short-01", "paris")
        assert result.is_correct is True
        assert result.streak == 2
        assert result.mastered is True
        assert result.completed is True

        result = service.submit_answer("short-01", "London")
        assert result.is_correct is False
        assert result.streak == 0
        assert result.mastered is False

    def test_typo_accepted_without_delegate(self, service, store_deck, make_record):
        store_deck("deck-usa", [make_record("capital", QuestionType.SHORT, correct_answer="Washington", deck_id="deck-usa")])

        result = service.submit_answer("capital", "Washinqton")

        assert result.is_correct is True
        assert result.method is GradingMethod.FUZZY
        assert result.correct_answer == "Washington"

    def test_unknown_question(self, service):
        with pytest.raises(NotFoundError):
            service.submit_answer("missing", "a")

    def test_answer_map_translates_presented_label(self, service, stored_deck):
        presented = next(
            q for q in service.start_session(stored_deck, count=20) if q.type is QuestionType.MCQ
        )
        # Stored correct answer for sample MCQs is "a"
        label = next(new for new, stored in presented.answer_map.items() if stored == "a")

        result = service.submit_answer(presented.id, label.upper(), answer_map=presented.answer_map)

        assert result.is_correct is True
        assert result.correct_answer == "a"

    def test_wrong_mcq_feedback_quotes_presented_labels(self, service, stored_deck):
        presented = next(
            q for q in service.start_session(stored_deck, count=20) if q.type is QuestionType.MCQ
        )
        shown_correct = next(new for new, stored in presented.answer_map.items() if stored == "a")
        shown_wrong = next(new for new, stored in presented.answer_map.items() if stored == "b")

        result = service.submit_answer(presented.id, shown_wrong, answer_map=presented.answer_map)

        assert result.is_correct is False
        assert result.explanation == (
            f"Your answer '{shown_wrong}' (Lyon) is incorrect. "
            f"The correct answer is '{shown_correct}' (Paris)."
        )

    def test_attempt_logged(self, service, stored_deck, session_factory):
        service.submit_answer("mcq-03", "b")

        with session_scope(session_factory) as session:
            attempts = session.query(Attempt).filter_by(question_id="mcq-03").all()
        assert len(attempts) == 1
        assert attempts[0].user_answer == "b"
        assert attempts[0].is_correct is False
        assert attempts[0].deck_id == "deck-1"

    def test_attempt_failure_is_degraded_not_lost(self, session_factory, stored_deck):
        service = QuizService(session_factory=session_factory, recorder=FailingRecorder())

        result = service.submit_answer("short-02", "Paris")

        assert result.degraded is True
        assert result.is_correct is True
        assert result.streak == 1
        assert _streak(session_factory, "short-02") == 1

    def test_mastery_failure_carries_grade(self, session_factory, stored_deck):
        service = QuizService(session_factory=session_factory, tracker=FailingTracker())

        with pytest.raises(PersistenceError) as excinfo:
            service.submit_answer("short-03", "Paris")

        assert excinfo.value.grade is not None
        assert excinfo.value.grade.is_correct is True
        with session_scope(session_factory) as session:
            assert session.query(Attempt).count() == 0


class TestReadSide:
    def test_get_question(self, service, stored_deck):
        question = service.get_question("mcq-00")
        assert question.type is QuestionType.MCQ
        assert question.correct_answer == "a"

    def test_deck_progress(self, service, stored_deck):
        service.submit_answer("short-04", "Paris")
        service.submit_answer("short-04", "Paris")
        service.submit_answer("short-05", "Paris")
        service.submit_answer("short-06", "Rome")

        progress = service.deck_progress(stored_deck)

        assert progress.total == 20
        assert progress.completed == 2
        assert progress.mastered == 1
        assert progress.unmastered == 19
        assert progress.attempts == 4
        assert progress.accuracy == 0.75

    def test_progress_unknown_deck(self, service):
        with pytest.raises(NotFoundError):
            service.deck_progress("nope")


class TestImport:
    RECORDS = [
        {
            "type": "mcq",
            "prompt": "Which layer routes packets?",
            "options": ["Physical", "Data Link", "Network", "Transport"],
            "correct_answer": "C",
            "explanation": "c) Layer 3 routes packets.",
            "tags": "section:osi,layers",
        },
        {"type": "CLOZE", "prompt": "The ___ layer routes packets.", "correct_answer": "network"},
    ]

    def test_import_creates_deck(self, service, session_factory):
        stored = service.import_deck("osi", self.RECORDS, name="OSI model")

        assert stored == 2
        progress = service.deck_progress("osi")
        assert progress.total == 2

    def test_imported_defaults(self, service):
        service.import_deck("osi", self.RECORDS, name="OSI model")
        questions = service.start_session("osi", count=2)
        by_type = {q.type: service.get_question(q.id) for q in questions}

        mcq = by_type[QuestionType.MCQ]
        assert mcq.options == {"a": "Physical", "b": "Data Link", "c": "Network", "d": "Transport"}
        assert mcq.correct_answer == "c"
        assert mcq.tags == ("section:osi", "layers")
        assert by_type[QuestionType.CLOZE].difficulty == 3
        assert by_type[QuestionType.CLOZE].tags == ()

    def test_import_into_unknown_deck_without_name(self, service):
        with pytest.raises(NotFoundError):
            service.import_deck("ghost", self.RECORDS)

    def test_invalid_record_stores_nothing(self, service):
        bad = self.RECORDS + [{"type": "MCQ", "prompt": "Broken", "correct_answer": "e"}]

        with pytest.raises(ValidationError):
            service.import_deck("osi", bad, name="OSI model")

        with pytest.raises(NotFoundError):
            service.deck_progress("osi")
