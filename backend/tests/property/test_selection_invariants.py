"""Property-based tests for selection invariants."""

import random
from collections import Counter

from hypothesis import given, settings, strategies as st

from question_engine.selection.balancer import rebalance_by_exam_type, select_balanced
from question_engine.selection.distributor import distribute_evenly, distribute_proportionally
from question_engine.selection.types import QuestionRecord

DIFFICULTIES = st.sampled_from(["Easy", "Medium", "Hard", None, "Expert"])
EXAM_TYPES = st.sampled_from(["WAEC", "JAMB", "NECO", "General"])


@st.composite
def question_pools(draw, max_size: int = 60) -> list[QuestionRecord]:
    size = draw(st.integers(min_value=0, max_value=max_size))
    return [
        QuestionRecord(
            id=f"q{i}",
            topic_id="topic-1",
            subject_id="subject-1",
            difficulty=draw(DIFFICULTIES),
            exam_type=draw(EXAM_TYPES),
        )
        for i in range(size)
    ]


@settings(max_examples=100, deadline=None)
@given(
    pool=question_pools(),
    count=st.integers(min_value=0, max_value=80),
    exclude_every=st.integers(min_value=2, max_value=6),
    seed=st.integers(min_value=0, max_value=10_000),
)
def test_select_balanced_respects_exclusion_and_size(
    pool: list[QuestionRecord],
    count: int,
    exclude_every: int,
    seed: int,
) -> None:
    """
    Property: selection is distinct, never excluded, and as large as supply allows.

    Invariants:
    - len(result) == min(count, available)
    - no excluded id is returned
    - every returned question comes from the pool
    """
    excluded = {q.id for i, q in enumerate(pool) if i % exclude_every == 0}
    available = [q for q in pool if q.id not in excluded]

    result = select_balanced(pool, excluded, count, random.Random(seed))
    ids = [q.id for q in result]

    assert len(ids) == len(set(ids))
    assert not set(ids) & excluded
    assert set(ids) <= {q.id for q in pool}
    assert len(result) == min(count, len(available))


@settings(max_examples=100, deadline=None)
@given(
    topics=st.lists(st.text(min_size=1, max_size=5), min_size=1, max_size=10),
    total=st.integers(min_value=0, max_value=500),
)
def test_distribute_evenly_sums_and_spreads(topics: list[str], total: int) -> None:
    """
    Property: even split sums to total and counts differ by at most one.
    """
    result = distribute_evenly(topics, total)

    assert sum(result.values()) == total
    assert set(result) == set(topics)
    assert max(result.values()) - min(result.values()) <= 1


@settings(max_examples=100, deadline=None)
@given(
    sizes=st.dictionaries(
        st.text(min_size=1, max_size=5), st.integers(min_value=0, max_value=100), max_size=8
    ),
    total=st.integers(min_value=0, max_value=400),
)
def test_distribute_proportionally_never_exceeds_supply(sizes: dict[str, int], total: int) -> None:
    """
    Property: proportional split is capped by supply and otherwise exact.

    Invariants:
    - sum == min(total, sum of sizes)
    - no topic exceeds its size
    - no zero entries
    """
    result = distribute_proportionally(sizes, total)

    assert sum(result.values()) == min(total, sum(sizes.values()))
    assert all(0 < count <= sizes[topic] for topic, count in result.items())


@settings(max_examples=100, deadline=None)
@given(
    type_count=st.integers(min_value=2, max_value=4),
    total=st.integers(min_value=1, max_value=20),
    seed=st.integers(min_value=0, max_value=10_000),
)
def test_rebalance_spreads_evenly_with_enough_supply(type_count: int, total: int, seed: int) -> None:
    """
    Property: with every exam type able to cover the whole total, counts per
    type differ by at most one.
    """
    exam_types = ["WAEC", "JAMB", "NECO", "General"][:type_count]
    questions = [
        QuestionRecord(id=f"{exam_type}-{i}", topic_id="t", subject_id="s", exam_type=exam_type)
        for exam_type in exam_types
        for i in range(total)
    ]
    rng = random.Random(seed)
    selected = questions[:total]
    alternates = questions[total:]

    result = rebalance_by_exam_type(selected, total, rng, alternates=alternates)
    per_type = Counter(q.exam_type for q in result)

    assert len(result) == total
    assert len({q.id for q in result}) == total
    counts = [per_type.get(exam_type, 0) for exam_type in exam_types]
    assert max(counts) - min(counts) <= 1
