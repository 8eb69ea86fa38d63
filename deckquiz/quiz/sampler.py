"""
Stratified session sampler.

Selects the questions of one quiz session from a deck's pool:

1. Mode filter: Weak/Due sessions only see questions below the mastered streak
2. Difficulty stratification: an explicit tier narrows the pool to that tier;
   otherwise ``count`` is split evenly across easy/medium/hard (remainder to
   hard) and the per-tier quota picks are preferred everywhere below
3. Type-ratio allocation: floor(count * ratio / sum) per type, remainder to
   SHORT; each type bucket is exposure-ordered before it is sliced
4. Backfill from the remaining candidates when the type draw falls short
5. Final shuffle so the order does not reveal type or tier grouping

The sampler holds no state. Randomness comes only from the ``rng`` passed in.
"""
from __future__ import annotations

import hashlib
import math
import random
from typing import Iterable, Mapping

from loguru import logger

from deckquiz.exceptions import ValidationError
from deckquiz.quiz.exposure import ExposureOrderer
from deckquiz.quiz.models import (
    MASTERED_STREAK,
    DifficultyTier,
    QuestionRecord,
    QuestionType,
    SamplingRequest,
    SessionMode,
)
from deckquiz.quiz.pool import QuestionPool

# Absorbs float error in ratios such as 0.1 / 0.2 / 0.7
_RATIO_EPSILON = 1e-9


def create_rng(seed: str | int | None = None) -> random.Random:
    """
    Build the random source for one session.

    Strings are hashed so any session key (user id + attempt number, say)
    replays the same draw. ``None`` seeds from OS entropy.
    """
    if seed is None:
        return random.Random()
    if isinstance(seed, int):
        return random.Random(seed)
    hash_bytes = hashlib.sha256(str(seed).encode()).digest()
    return random.Random(int.from_bytes(hash_bytes[:8], byteorder="big"))


def type_targets(count: int, ratios: Mapping[QuestionType, float]) -> dict[QuestionType, int]:
    """
    Per-type target counts for a session of ``count`` questions.

    Raises:
        ValidationError: if a ratio is negative or not finite, or all ratios are zero
    """
    weights = {qtype: float(ratios.get(qtype, 0.0)) for qtype in QuestionType}
    if not all(math.isfinite(w) for w in weights.values()):
        raise ValidationError("type ratios must be finite numbers")
    if any(w < 0 for w in weights.values()):
        raise ValidationError("type ratios must be non-negative")
    total = sum(weights.values())
    if not math.isfinite(total):
        raise ValidationError("type ratios are too large")
    if total <= 0:
        raise ValidationError("type ratios must not all be zero")

    targets = {
        qtype: math.floor(count * weight / total + _RATIO_EPSILON)
        for qtype, weight in weights.items()
    }
    targets[QuestionType.SHORT] += count - sum(targets.values())
    return targets


class StratifiedSampler:
    """Picks session question ids from a pool snapshot."""

    def __init__(self, mastered_threshold: int = MASTERED_STREAK):
        self.mastered_threshold = mastered_threshold

    def sample(
        self,
        pool: QuestionPool,
        request: SamplingRequest,
        rng: random.Random,
    ) -> list[str]:
        """
        Select at most ``request.count`` distinct question ids.

        Returns an empty list when the mode filter or tier leaves nothing.
        """
        count = max(1, int(request.count))
        eligible = self._filter_mode(pool, request.mode)
        if not eligible:
            logger.info(f"No eligible questions in deck {pool.deck_id} for mode {request.mode.value}")
            return []

        if request.tier is not None:
            candidates = [q for q in eligible if q.tier is request.tier]
            priority: set[str] = set()
        else:
            candidates = eligible
            priority = self._tier_quota_ids(eligible, count, rng)

        if not candidates:
            logger.info(f"No {request.tier.value} questions in deck {pool.deck_id}")
            return []

        selected = self._allocate_types(
            candidates,
            count,
            request.ratios,
            priority,
            pool.exposure_orderer(),
            rng,
        )

        selected = selected[:count]
        rng.shuffle(selected)

        logger.debug(
            f"Sampled {len(selected)}/{count} from deck {pool.deck_id} "
            f"({len(candidates)} candidates, mode={request.mode.value}, "
            f"tier={request.tier.value if request.tier else 'stratified'})"
        )
        return [q.id for q in selected]

    def _filter_mode(self, pool: QuestionPool, mode: SessionMode) -> list[QuestionRecord]:
        """Apply the session mode and drop duplicate ids (first one wins)."""
        seen: set[str] = set()
        eligible = []
        for question in pool:
            if question.id in seen:
                continue
            if mode.unmastered_only and pool.streak(question.id) >= self.mastered_threshold:
                continue
            seen.add(question.id)
            eligible.append(question)
        return eligible

    def _tier_quota_ids(
        self,
        eligible: list[QuestionRecord],
        count: int,
        rng: random.Random,
    ) -> set[str]:
        """Ids drawn by the even easy/medium/hard split, backfilled from tier leftovers."""
        per_tier, remainder = divmod(count, 3)
        quotas = {
            DifficultyTier.EASY: per_tier,
            DifficultyTier.MEDIUM: per_tier,
            DifficultyTier.HARD: per_tier + remainder,
        }

        picked: list[QuestionRecord] = []
        leftovers: list[QuestionRecord] = []
        for tier, quota in quotas.items():
            bucket = [q for q in eligible if q.tier is tier]
            rng.shuffle(bucket)
            picked.extend(bucket[:quota])
            leftovers.extend(bucket[quota:])

        if len(picked) < count:
            rng.shuffle(leftovers)
            picked.extend(leftovers[: count - len(picked)])

        return {q.id for q in picked}

    def _allocate_types(
        self,
        candidates: list[QuestionRecord],
        count: int,
        ratios: Mapping[QuestionType, float],
        priority: set[str],
        orderer: ExposureOrderer,
        rng: random.Random,
    ) -> list[QuestionRecord]:
        targets = type_targets(count, ratios)
        selected: list[QuestionRecord] = []
        chosen: set[str] = set()

        def take(question: QuestionRecord) -> bool:
            if question.id in chosen:
                return False
            chosen.add(question.id)
            selected.append(question)
            return True

        def prefer(questions: Iterable[QuestionRecord]) -> list[QuestionRecord]:
            ordered = orderer.order(questions, rng)
            ordered.sort(key=lambda q: q.id not in priority)
            return ordered

        for qtype in QuestionType:
            want = targets[qtype]
            taken = 0
            for question in prefer(q for q in candidates if q.type is qtype):
                if taken >= want:
                    break
                if take(question):
                    taken += 1

        if len(selected) < count:
            remaining = [q for q in candidates if q.id not in chosen]
            rng.shuffle(remaining)
            remaining.sort(key=lambda q: q.id not in priority)
            for question in remaining:
                if len(selected) >= count:
                    break
                take(question)

        return selected
