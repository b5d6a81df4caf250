"""
Balanced selection within one topic pool.

Draws questions so a session mixes difficulty tiers (30% Easy, 50% Medium,
remainder Hard by default) and, for larger selections, spreads them across
exam types. Selection is random; callers that need reproducibility pass a
seeded random.Random.
"""

import logging
import math
import random
from collections import Counter
from collections.abc import Iterable

from question_engine.core.config import settings
from question_engine.models.question import Difficulty
from question_engine.selection.types import QuestionRecord

logger = logging.getLogger(__name__)

UNKNOWN_TIER = "Unknown"
TIERS = (Difficulty.EASY.value, Difficulty.MEDIUM.value, Difficulty.HARD.value)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (round() rounds to even)."""
    return int(math.floor(value + 0.5))


def tier_of(question: QuestionRecord) -> str:
    return question.difficulty if question.difficulty in TIERS else UNKNOWN_TIER


def dedupe(questions: Iterable[QuestionRecord]) -> list[QuestionRecord]:
    """Drop repeated ids, keeping the first occurrence."""
    seen: set[str] = set()
    unique = []
    for q in questions:
        if q.id not in seen:
            seen.add(q.id)
            unique.append(q)
    return unique


def difficulty_targets(
    count: int,
    has_easy: bool = True,
    easy_ratio: float | None = None,
    medium_ratio: float | None = None,
) -> dict[str, int]:
    """
    Target number of questions per difficulty tier.

    easy = round(easy_ratio * count), at least 1 when easy questions exist
    medium = round(medium_ratio * count), at least 1
    hard = whatever is left, never negative
    """
    easy_ratio = settings.DIFFICULTY_EASY_RATIO if easy_ratio is None else easy_ratio
    medium_ratio = settings.DIFFICULTY_MEDIUM_RATIO if medium_ratio is None else medium_ratio

    easy = round_half_up(count * easy_ratio)
    if has_easy:
        easy = max(1, easy)
    medium = max(1, round_half_up(count * medium_ratio))
    hard = max(0, count - easy - medium)
    return {
        Difficulty.EASY.value: easy,
        Difficulty.MEDIUM.value: medium,
        Difficulty.HARD.value: hard,
    }


def _even_quotas(supply: dict[str, int], total: int) -> dict[str, int]:
    """Spread total across keys round-robin, never exceeding a key's supply."""
    quotas = {key: 0 for key in supply}
    remaining = total
    while remaining > 0:
        progressed = False
        for key in supply:
            if remaining == 0:
                break
            if quotas[key] < supply[key]:
                quotas[key] += 1
                remaining -= 1
                progressed = True
        if not progressed:
            break
    return quotas


def rebalance_by_exam_type(
    selected: list[QuestionRecord],
    total: int,
    rng: random.Random | None = None,
    alternates: Iterable[QuestionRecord] = (),
) -> list[QuestionRecord]:
    """
    Spread a selection across exam types as evenly as supply allows.

    Each exam type is capped near ceil(total / #types). Previously selected
    questions are kept first; under-represented types are topped up from
    alternates, preferring the difficulty tiers freed by trimming
    over-represented types. Any room left is filled from the rest of the
    selection, then the alternates.

    Returns:
        Shuffled list of at most total questions, without duplicates
    """
    rng = rng or random.Random()
    selected = dedupe(selected)
    selected_ids = {q.id for q in selected}
    spare = [q for q in dedupe(alternates) if q.id not in selected_ids]

    by_type_selected: dict[str, list[QuestionRecord]] = {}
    by_type_spare: dict[str, list[QuestionRecord]] = {}
    for q in selected:
        by_type_selected.setdefault(q.exam_type, []).append(q)
    for q in spare:
        by_type_selected.setdefault(q.exam_type, [])
        by_type_spare.setdefault(q.exam_type, []).append(q)

    supply = {
        exam_type: len(questions) + len(by_type_spare.get(exam_type, []))
        for exam_type, questions in by_type_selected.items()
    }
    quotas = _even_quotas(supply, total)

    kept: list[QuestionRecord] = []
    dropped: list[QuestionRecord] = []
    for exam_type, questions in by_type_selected.items():
        pool = list(questions)
        rng.shuffle(pool)
        kept.extend(pool[: quotas[exam_type]])
        dropped.extend(pool[quotas[exam_type]:])

    freed_tiers = Counter(tier_of(q) for q in dropped)
    swapped_in: list[QuestionRecord] = []
    for exam_type, questions in by_type_selected.items():
        needed = quotas[exam_type] - min(len(questions), quotas[exam_type])
        if needed <= 0:
            continue
        candidates = list(by_type_spare.get(exam_type, []))
        rng.shuffle(candidates)
        candidates.sort(key=lambda q: 0 if freed_tiers[tier_of(q)] > 0 else 1)
        for q in candidates[:needed]:
            swapped_in.append(q)
            if freed_tiers[tier_of(q)] > 0:
                freed_tiers[tier_of(q)] -= 1

    result = kept + swapped_in
    used = {q.id for q in result}
    for q in dropped + spare:
        if len(result) >= total:
            break
        if q.id not in used:
            result.append(q)
            used.add(q.id)

    result = result[:total]
    rng.shuffle(result)
    return result


def select_balanced(
    pool: list[QuestionRecord],
    excluded: set[str] | frozenset[str] | None,
    count: int,
    rng: random.Random | None = None,
) -> list[QuestionRecord]:
    """
    Select up to count questions from a topic pool.

    Args:
        pool: Published questions of the topic
        excluded: Question ids that must not be returned
        count: Number of questions wanted
        rng: Random source (a fresh one when omitted)

    Returns:
        Shuffled list of at most count distinct questions, none excluded
    """
    rng = rng or random.Random()
    excluded = excluded or set()
    available = [q for q in dedupe(pool) if q.id not in excluded]

    if count <= 0 or not available:
        return []

    if len(available) <= count:
        result = list(available)
        rng.shuffle(result)
        return result

    buckets: dict[str, list[QuestionRecord]] = {tier: [] for tier in (*TIERS, UNKNOWN_TIER)}
    for q in available:
        buckets[tier_of(q)].append(q)
    for bucket in buckets.values():
        rng.shuffle(bucket)

    targets = difficulty_targets(count, has_easy=bool(buckets[Difficulty.EASY.value]))

    selected: list[QuestionRecord] = []
    for tier in TIERS:
        take = min(targets[tier], count - len(selected))
        selected.extend(buckets[tier][:take])
        buckets[tier] = buckets[tier][take:]

    # Backfill short tiers: unknown difficulty first, then anything left
    if len(selected) < count:
        take = count - len(selected)
        selected.extend(buckets[UNKNOWN_TIER][:take])
        buckets[UNKNOWN_TIER] = buckets[UNKNOWN_TIER][take:]
    if len(selected) < count:
        leftovers = [q for tier in TIERS for q in buckets[tier]] + buckets[UNKNOWN_TIER]
        rng.shuffle(leftovers)
        selected.extend(leftovers[: count - len(selected)])

    exam_types = {q.exam_type for q in available}
    if len(exam_types) > 1 and len(selected) > settings.EXAM_TYPE_REBALANCE_MIN:
        selected_ids = {q.id for q in selected}
        alternates = [q for q in available if q.id not in selected_ids]
        return rebalance_by_exam_type(selected, len(selected), rng, alternates=alternates)

    rng.shuffle(selected)
    return selected
