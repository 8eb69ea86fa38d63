"""
Unit tests for StratifiedSampler.

Tests:
- Duplicate avoidance and size = min(count, eligible)
- Type-ratio targets (floor, remainder to SHORT)
- Weak/Due mode filtering
- Explicit difficulty tiers
- Seeded reproducibility
"""

from collections import Counter

import pytest

from deckquiz.exceptions import ValidationError
from deckquiz.quiz import (
    DifficultyTier,
    QuestionPool,
    QuestionType,
    SamplingRequest,
    SessionMode,
    StratifiedSampler,
    create_rng,
    type_targets,
)


@pytest.fixture
def sampler():
    return StratifiedSampler()


@pytest.fixture
def balanced_pool(make_record):
    """10 questions of each type, difficulties 1-5."""
    questions = [
        make_record(f"{qtype.value.lower()}-{i:02d}", qtype, difficulty=(i % 5) + 1)
        for qtype in QuestionType
        for i in range(10)
    ]
    return QuestionPool(deck_id="deck-1", questions=tuple(questions))


def _types(pool, ids):
    by_id = {q.id: q for q in pool}
    return Counter(by_id[qid].type for qid in ids)


class TestTypeTargets:
    """Tests for per-type target counts."""

    def test_default_ratios_for_eight(self):
        targets = type_targets(8, {QuestionType.MCQ: 0.5, QuestionType.CLOZE: 0.25, QuestionType.SHORT: 0.25})
        assert targets == {QuestionType.MCQ: 4, QuestionType.CLOZE: 2, QuestionType.SHORT: 2}

    def test_remainder_goes_to_short(self):
        targets = type_targets(7, {QuestionType.MCQ: 0.5, QuestionType.CLOZE: 0.25, QuestionType.SHORT: 0.25})
        assert targets[QuestionType.MCQ] == 3
        assert targets[QuestionType.CLOZE] == 1
        assert targets[QuestionType.SHORT] == 3
        assert sum(targets.values()) == 7

    def test_ratios_are_normalized_by_their_sum(self):
        targets = type_targets(10, {QuestionType.MCQ: 2, QuestionType.CLOZE: 2, QuestionType.SHORT: 1})
        assert targets == {QuestionType.MCQ: 4, QuestionType.CLOZE: 4, QuestionType.SHORT: 2}

    def test_float_error_does_not_lose_a_slot(self):
        targets = type_targets(10, {QuestionType.MCQ: 0.1, QuestionType.CLOZE: 0.2, QuestionType.SHORT: 0.7})
        assert targets == {QuestionType.MCQ: 1, QuestionType.CLOZE: 2, QuestionType.SHORT: 7}

    def test_negative_ratio_rejected(self):
        with pytest.raises(ValidationError):
            type_targets(5, {QuestionType.MCQ: -1, QuestionType.SHORT: 2})

    def test_all_zero_rejected(self):
        with pytest.raises(ValidationError):
            type_targets(5, {QuestionType.MCQ: 0, QuestionType.CLOZE: 0, QuestionType.SHORT: 0})

    @pytest.mark.parametrize(
        "ratios",
        [
            {QuestionType.MCQ: float("nan"), QuestionType.SHORT: 1.0},
            {QuestionType.MCQ: float("inf")},
            {QuestionType.MCQ: 1e308, QuestionType.CLOZE: 1e308},
        ],
    )
    def test_non_finite_ratios_rejected(self, ratios):
        with pytest.raises(ValidationError):
            type_targets(5, ratios)


class TestSelectionSize:
    """Tests for result size and duplicate avoidance."""

    def test_no_duplicates(self, sampler, balanced_pool):
        ids = sampler.sample(balanced_pool, SamplingRequest(count=12), create_rng(1))
        assert len(ids) == 12
        assert len(set(ids)) == 12

    def test_pool_smaller_than_count_returns_whole_pool(self, sampler, make_record):
        questions = tuple(make_record(f"q-{i}", QuestionType.MCQ) for i in range(5))
        pool = QuestionPool(deck_id="deck-1", questions=questions)

        ids = sampler.sample(pool, SamplingRequest(count=20), create_rng(2))

        assert sorted(ids) == sorted(q.id for q in questions)

    def test_duplicate_pool_entries_are_drawn_once(self, sampler, make_record):
        question = make_record("dup", QuestionType.MCQ)
        pool = QuestionPool(deck_id="deck-1", questions=(question, question, question))

        assert sampler.sample(pool, SamplingRequest(count=3), create_rng(3)) == ["dup"]

    def test_count_clamped_to_at_least_one(self, sampler, balanced_pool):
        ids = sampler.sample(balanced_pool, SamplingRequest(count=0), create_rng(4))
        assert len(ids) == 1

    def test_empty_pool(self, sampler):
        pool = QuestionPool(deck_id="deck-1")
        assert sampler.sample(pool, SamplingRequest(count=5), create_rng(5)) == []


class TestTypeAllocation:
    """Tests for type-ratio allocation."""

    def test_exact_targets_when_every_type_has_enough(self, sampler, balanced_pool):
        for seed in range(20):
            ids = sampler.sample(balanced_pool, SamplingRequest(count=8), create_rng(seed))
            types = _types(balanced_pool, ids)
            assert types[QuestionType.MCQ] == 4
            assert types[QuestionType.CLOZE] == 2
            assert types[QuestionType.SHORT] == 2

    def test_missing_type_is_backfilled(self, sampler, sample_records):
        # 10 MCQ + 10 SHORT, no CLOZE
        pool = QuestionPool(deck_id="deck-1", questions=tuple(sample_records))

        for seed in range(20):
            ids = sampler.sample(pool, SamplingRequest(count=8), create_rng(seed))
            types = _types(pool, ids)
            assert len(ids) == 8
            assert len(set(ids)) == 8
            assert types[QuestionType.MCQ] >= 4
            assert types[QuestionType.SHORT] >= 2
            assert types[QuestionType.CLOZE] == 0

    def test_custom_ratio(self, sampler, balanced_pool):
        request = SamplingRequest(count=6, ratios={QuestionType.SHORT: 1.0})
        ids = sampler.sample(balanced_pool, request, create_rng(9))
        assert _types(balanced_pool, ids) == Counter({QuestionType.SHORT: 6})


class TestModeFilter:
    """Tests for Weak/Due filtering."""

    @pytest.mark.parametrize("mode", [SessionMode.WEAK, SessionMode.DUE])
    def test_mastered_questions_excluded(self, sampler, make_record, mode):
        questions = tuple(make_record(f"q-{i}", QuestionType.SHORT) for i in range(10))
        streaks = {f"q-{i}": i % 4 for i in range(10)}
        pool = QuestionPool(deck_id="deck-1", questions=questions, streaks=streaks)

        ids = sampler.sample(pool, SamplingRequest(count=10, mode=mode), create_rng(11))

        assert ids
        assert all(streaks[qid] < 2 for qid in ids)
        assert sorted(ids) == sorted(qid for qid, s in streaks.items() if s < 2)

    def test_mixed_keeps_mastered(self, sampler, make_record):
        questions = tuple(make_record(f"q-{i}", QuestionType.SHORT) for i in range(4))
        pool = QuestionPool(deck_id="deck-1", questions=questions, streaks={"q-0": 5, "q-1": 2})

        ids = sampler.sample(pool, SamplingRequest(count=4, mode=SessionMode.MIXED), create_rng(12))

        assert sorted(ids) == ["q-0", "q-1", "q-2", "q-3"]

    def test_everything_mastered_gives_empty_session(self, sampler, make_record):
        questions = tuple(make_record(f"q-{i}", QuestionType.MCQ) for i in range(3))
        pool = QuestionPool(deck_id="deck-1", questions=questions, streaks={q.id: 2 for q in questions})

        assert sampler.sample(pool, SamplingRequest(count=3, mode=SessionMode.WEAK), create_rng(13)) == []


class TestDifficulty:
    """Tests for difficulty tiers."""

    def test_tier_boundaries(self):
        assert DifficultyTier.for_difficulty(1) is DifficultyTier.EASY
        assert DifficultyTier.for_difficulty(2) is DifficultyTier.EASY
        assert DifficultyTier.for_difficulty(3) is DifficultyTier.MEDIUM
        assert DifficultyTier.for_difficulty(4) is DifficultyTier.HARD
        assert DifficultyTier.for_difficulty(5) is DifficultyTier.HARD

    def test_explicit_tier_is_the_whole_candidate_pool(self, sampler, balanced_pool):
        by_id = {q.id: q for q in balanced_pool}
        ids = sampler.sample(
            balanced_pool,
            SamplingRequest(count=30, tier=DifficultyTier.HARD),
            create_rng(14),
        )
        assert len(ids) == 12
        assert all(by_id[qid].difficulty >= 4 for qid in ids)

    def test_missing_tier_gives_empty_session(self, sampler, make_record):
        questions = tuple(make_record(f"q-{i}", QuestionType.MCQ, difficulty=3) for i in range(4))
        pool = QuestionPool(deck_id="deck-1", questions=questions)

        ids = sampler.sample(pool, SamplingRequest(count=4, tier=DifficultyTier.EASY), create_rng(15))

        assert ids == []

    def test_stratified_draw_spreads_over_tiers(self, sampler, make_record):
        # One type only, so the tier quotas decide the draw
        questions = tuple(
            make_record(f"q-{d}-{i}", QuestionType.SHORT, difficulty=d)
            for d in (1, 3, 5)
            for i in range(6)
        )
        pool = QuestionPool(deck_id="deck-1", questions=questions)
        request = SamplingRequest(count=6, ratios={QuestionType.SHORT: 1.0})

        ids = sampler.sample(pool, request, create_rng(16))

        tiers = Counter(qid.split("-")[1] for qid in ids)
        assert tiers == Counter({"1": 2, "3": 2, "5": 2})

    def test_tier_shortfall_backfilled_from_other_tiers(self, sampler, make_record):
        questions = tuple(
            make_record(f"q-3-{i}", QuestionType.SHORT, difficulty=3) for i in range(6)
        ) + (make_record("q-5-0", QuestionType.SHORT, difficulty=5),)
        pool = QuestionPool(deck_id="deck-1", questions=questions)

        ids = sampler.sample(pool, SamplingRequest(count=6, ratios={QuestionType.SHORT: 1.0}), create_rng(17))

        assert len(ids) == 6
        assert "q-5-0" in ids


class TestReproducibility:
    """Tests for the injected random source."""

    def test_same_seed_same_session(self, sampler, balanced_pool):
        first = sampler.sample(balanced_pool, SamplingRequest(count=10), create_rng("learner-7:3"))
        second = sampler.sample(balanced_pool, SamplingRequest(count=10), create_rng("learner-7:3"))
        assert first == second

    def test_string_and_int_seeds(self):
        assert create_rng("abc").random() == create_rng("abc").random()
        assert create_rng(42).random() == create_rng(42).random()
