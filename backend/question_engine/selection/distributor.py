"""
Multi-topic distribution.

Splits a question count across topics and gathers balanced selections from
each topic concurrently:
- distribute_evenly: equal split, remainder to the first topics
- distribute_proportionally: split by pool size (largest remainder)
- TopicDistributor.select_across_topics: over-fetch per topic, then trim
- TopicDistributor.select_with_distribution: exact per-topic quotas with
  compensation from the larger topics when one under-delivers
"""

import asyncio
import logging
import math
import random

from question_engine.core.config import settings
from question_engine.selection.balancer import dedupe, rebalance_by_exam_type, select_balanced
from question_engine.selection.pool_cache import PoolCache
from question_engine.selection.types import QuestionRecord

logger = logging.getLogger(__name__)


def distribute_evenly(topic_ids: list[str], total: int) -> dict[str, int]:
    """
    Split total across topics so counts differ by at most one.

    The remainder goes to the first topics in input order. Repeated topic
    ids are collapsed.
    """
    if total < 0:
        raise ValueError("total must be non-negative")
    unique_topics = list(dict.fromkeys(topic_ids))
    if not unique_topics:
        return {}

    base, remainder = divmod(total, len(unique_topics))
    return {
        topic_id: base + (1 if index < remainder else 0)
        for index, topic_id in enumerate(unique_topics)
    }


def distribute_proportionally(topic_sizes: dict[str, int], total: int) -> dict[str, int]:
    """
    Split total across topics in proportion to their pool sizes.

    Floors each share, then hands leftover units to the largest fractional
    remainders (ties go to the topic with more spare questions). No topic is
    given more than it holds; topics ending at zero are left out.
    """
    if total < 0:
        raise ValueError("total must be non-negative")
    sizes = {topic_id: size for topic_id, size in topic_sizes.items() if size > 0}
    total_available = sum(sizes.values())
    if not sizes or total == 0:
        return {}

    counts: dict[str, int] = {}
    remainders: dict[str, float] = {}
    for topic_id, size in sizes.items():
        exact = size / total_available * total
        counts[topic_id] = min(math.floor(exact), size)
        remainders[topic_id] = exact - math.floor(exact)

    def spare(topic_id: str) -> int:
        return sizes[topic_id] - counts[topic_id]

    leftover = total - sum(counts.values())
    ranked = sorted(sizes, key=lambda t: (-round(remainders[t], 3), -spare(t)))
    for topic_id in ranked:
        if leftover <= 0:
            break
        if spare(topic_id) > 0:
            counts[topic_id] += 1
            leftover -= 1

    # Still short only when capped topics gave up units; pour into spare capacity
    while leftover > 0:
        candidates = [t for t in sizes if spare(t) > 0]
        if not candidates:
            break
        topic_id = max(candidates, key=spare)
        counts[topic_id] += 1
        leftover -= 1

    return {topic_id: count for topic_id, count in counts.items() if count > 0}


def per_topic_request(total: int, topic_count: int, multiplier: int | None = None) -> int:
    """Candidates to ask each topic for when over-fetching across topics."""
    multiplier = settings.TOPIC_OVERFETCH_MULTIPLIER if multiplier is None else multiplier
    base = math.ceil(total / topic_count)
    return max(base * multiplier, 3 if total < 10 else 5)


class TopicDistributor:
    """Gathers balanced selections from several topics through the pool cache."""

    def __init__(self, pool_cache: PoolCache, rng: random.Random | None = None):
        self.pool_cache = pool_cache
        self.rng = rng or random.Random()

    async def select_from_topic(
        self,
        topic_id: str,
        count: int,
        excluded: set[str] | frozenset[str],
    ) -> list[QuestionRecord]:
        pool = await self.pool_cache.get_pool(topic_id)
        return select_balanced(pool, excluded, count, self.rng)

    def _warn_short_topics(
        self, topic_ids: list[str], results: list[list[QuestionRecord]], requested: list[int]
    ) -> None:
        for topic_id, questions, wanted in zip(topic_ids, results, requested):
            if len(questions) < wanted:
                logger.warning(
                    f"Topic {topic_id} returned {len(questions)} questions (requested {wanted})",
                    extra={
                        "event": "topic_short",
                        "topic_id": topic_id,
                        "requested": wanted,
                        "received": len(questions),
                    },
                )

    async def select_across_topics(
        self,
        topic_ids: list[str],
        total: int,
        excluded: set[str] | frozenset[str] | None = None,
    ) -> list[QuestionRecord]:
        """
        Select total questions spread over topics.

        Each topic is asked for more than its even share so the exam-type
        pass has room to work. Returns fewer than total when supply runs out.
        """
        if total < 0:
            raise ValueError("total must be non-negative")
        excluded = excluded or set()
        topic_ids = list(dict.fromkeys(topic_ids))
        if not topic_ids or total == 0:
            return []
        if len(topic_ids) == 1:
            return await self.select_from_topic(topic_ids[0], total, excluded)

        per_topic = per_topic_request(total, len(topic_ids))
        logger.debug(
            f"Requesting {per_topic} questions per topic across {len(topic_ids)} topics",
            extra={
                "event": "topic_fanout",
                "topics": len(topic_ids),
                "per_topic": per_topic,
                "total": total,
                "excluded": len(excluded),
            },
        )

        results = await asyncio.gather(
            *(self.select_from_topic(topic_id, per_topic, excluded) for topic_id in topic_ids)
        )
        self._warn_short_topics(topic_ids, results, [per_topic] * len(topic_ids))
        candidates = dedupe(q for questions in results for q in questions)

        if len(candidates) < total:
            logger.warning(
                f"Insufficient questions: requested {total}, got {len(candidates)}",
                extra={"event": "selection_shortfall", "requested": total, "received": len(candidates)},
            )
            self.rng.shuffle(candidates)
            return candidates

        if len(candidates) > total and len({q.exam_type for q in candidates}) > 1:
            return rebalance_by_exam_type(candidates, total, self.rng)

        self.rng.shuffle(candidates)
        return candidates[:total]

    async def select_with_distribution(
        self,
        distribution: dict[str, int],
        excluded: set[str] | frozenset[str] | None = None,
    ) -> list[QuestionRecord]:
        """
        Select exactly the requested number of questions per topic.

        When a topic under-delivers, topics with the largest quotas are asked
        for extras (excluding everything already chosen) until the total is
        met or no topic has more. Never returns more than the quota sum.
        """
        excluded = excluded or set()
        quotas = {topic_id: count for topic_id, count in distribution.items() if count > 0}
        total = sum(quotas.values())
        if total == 0:
            return []

        topic_ids = list(quotas)
        results = await asyncio.gather(
            *(self.select_from_topic(topic_id, quotas[topic_id], excluded) for topic_id in topic_ids)
        )
        self._warn_short_topics(topic_ids, results, [quotas[t] for t in topic_ids])
        selected = dedupe(q for questions in results for q in questions)

        if len(selected) < total and len(topic_ids) > 1:
            for topic_id in sorted(topic_ids, key=lambda t: quotas[t], reverse=True):
                needed = total - len(selected)
                if needed <= 0:
                    break
                already = set(excluded) | {q.id for q in selected}
                extras = await self.select_from_topic(
                    topic_id, needed + settings.COMPENSATION_EXTRA, already
                )
                added = 0
                for q in extras:
                    if len(selected) >= total:
                        break
                    if q.id not in already:
                        selected.append(q)
                        already.add(q.id)
                        added += 1
                if added:
                    logger.info(
                        f"Added {added} extra questions from topic {topic_id}",
                        extra={"event": "topic_compensation", "topic_id": topic_id, "added": added},
                    )

        if len(selected) < total:
            logger.warning(
                f"Question distribution: requested {total}, received {len(selected)}",
                extra={"event": "selection_shortfall", "requested": total, "received": len(selected)},
            )

        self.rng.shuffle(selected)
        return selected[:total]
