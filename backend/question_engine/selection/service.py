"""
Selection orchestrator.

Per call: PoolSizeCheck -> NormalSelect | ResetThenSelect -> Record -> Done.

The ledger is read before selecting and written only after the selection is
final. Authenticated writes run as background tasks by default, so two
concurrent calls for the same learner and subject can overlap until one of
the writes lands. Strict mode (SELECTION_LOCK_ENABLED) serializes those calls
behind a Redis lock and awaits the write inside it.
"""

import asyncio
import logging
import random
from typing import Protocol

from question_engine.core.app_exceptions import SelectionInProgressError
from question_engine.core.config import settings
from question_engine.core.redis_lock import redis_lock, selection_lock_key
from question_engine.selection.distributor import TopicDistributor, distribute_proportionally
from question_engine.selection.ledger import AttemptedLedger
from question_engine.selection.pool_cache import PoolCache
from question_engine.selection.types import PoolStatus, QuestionRecord, SelectionResult

logger = logging.getLogger(__name__)


class QuestionSource(Protocol):
    async def fetch_topic_pool(self, topic_id: str) -> list[QuestionRecord]: ...

    async def count_subject_questions(self, subject_id: str) -> int: ...

    async def list_topic_ids(self, subject_id: str) -> list[str]: ...


def should_reset(total_in_pool: int, attempted_before: int, count: int, threshold: float | None = None) -> bool:
    """
    Decide whether the learner's history for the subject must be cleared.

    Resets when nothing is left, or when what is left cannot fill the request
    and is under threshold (default 10%) of the pool.
    """
    threshold = settings.POOL_RESET_THRESHOLD_RATIO if threshold is None else threshold
    remaining = total_in_pool - attempted_before
    if remaining <= 0:
        return True
    return remaining < count and remaining < threshold * total_in_pool


class SelectionService:
    """Entry point for choosing practice questions for a learner."""

    def __init__(
        self,
        store: QuestionSource,
        database_ledger: AttemptedLedger | None = None,
        guest_ledger: AttemptedLedger | None = None,
        pool_cache: PoolCache | None = None,
        rng: random.Random | None = None,
        lock_enabled: bool | None = None,
    ):
        self.store = store
        self.pool_cache = pool_cache or PoolCache(store.fetch_topic_pool)
        self.distributor = TopicDistributor(self.pool_cache, rng)
        self.database_ledger = database_ledger
        self.guest_ledger = guest_ledger
        self.lock_enabled = settings.SELECTION_LOCK_ENABLED if lock_enabled is None else lock_enabled
        self.failed_writes = 0
        self._pending_writes: set[asyncio.Task] = set()

    def ledger_for(self, user_id: str | None) -> AttemptedLedger:
        """Guest ledger when user_id is None, database ledger for any other id."""
        is_guest = user_id is None
        ledger = self.guest_ledger if is_guest else self.database_ledger
        if ledger is None:
            mode = "guest" if is_guest else "authenticated"
            raise RuntimeError(f"No ledger configured for {mode} learners")
        return ledger

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    async def select_questions(
        self,
        user_id: str | None,
        subject_id: str,
        topic_ids: list[str] | None = None,
        count: int = 20,
        distribution: dict[str, int] | None = None,
    ) -> SelectionResult:
        """
        Select questions the learner has not seen yet.

        Args:
            user_id: Authenticated learner, or None for a guest
            subject_id: Subject whose pool and history apply
            topic_ids: Topics to draw from when no distribution is given
            count: Number of questions wanted
            distribution: Optional exact topic -> count quotas

        Returns:
            SelectionResult; fewer questions than requested means the pool
            could not supply more (see SelectionResult.shortfall)
        """
        if count < 0:
            raise ValueError("count must be non-negative")
        if distribution and any(quota < 0 for quota in distribution.values()):
            raise ValueError("distribution counts must be non-negative")

        if self.lock_enabled and user_id is not None:
            ttl = settings.SELECTION_LOCK_TTL_SECONDS
            with redis_lock(selection_lock_key(user_id, subject_id), ttl_seconds=ttl) as acquired:
                if not acquired:
                    raise SelectionInProgressError(user_id, subject_id, retry_after_seconds=ttl)
                return await self._select(user_id, subject_id, topic_ids, count, distribution, wait_for_record=True)

        return await self._select(user_id, subject_id, topic_ids, count, distribution, wait_for_record=False)

    async def _select(
        self,
        user_id: str | None,
        subject_id: str,
        topic_ids: list[str] | None,
        count: int,
        distribution: dict[str, int] | None,
        wait_for_record: bool,
    ) -> SelectionResult:
        total_in_pool = await self.store.count_subject_questions(subject_id)
        if total_in_pool == 0:
            logger.info(
                f"Subject {subject_id} has no published questions",
                extra={"event": "empty_pool", "subject_id": subject_id},
            )
            return SelectionResult(requested=count)

        ledger = self.ledger_for(user_id)
        attempted = await ledger.get_attempted(user_id, subject_id)
        attempted_before = len(attempted)
        remaining = total_in_pool - attempted_before

        if count == 0:
            return SelectionResult(
                remaining_in_pool=max(0, remaining),
                total_in_pool=total_in_pool,
                attempted_before=attempted_before,
            )

        pool_reset = should_reset(total_in_pool, attempted_before, count)
        if pool_reset:
            deleted = await ledger.reset(user_id, subject_id)
            excluded: set[str] = set()
            logger.info(
                f"Pool reset for subject {subject_id} ({deleted} attempted cleared)",
                extra={
                    "event": "pool_reset",
                    "user_id": user_id,
                    "subject_id": subject_id,
                    "remaining": remaining,
                    "total_in_pool": total_in_pool,
                    "deleted": deleted,
                },
            )
        else:
            excluded = attempted

        if distribution:
            questions = await self.distributor.select_with_distribution(distribution, excluded)
        elif topic_ids:
            questions = await self.distributor.select_across_topics(topic_ids, count, excluded)
        else:
            logger.warning(
                "Selection requested without topics or distribution",
                extra={"event": "selection_no_topics", "subject_id": subject_id},
            )
            questions = []
        questions = questions[:count]

        question_ids = [q.id for q in questions]
        if question_ids:
            if user_id is None or wait_for_record:
                await self._record_safely(ledger, user_id, subject_id, question_ids)
            else:
                self._schedule_record(ledger, user_id, subject_id, question_ids)

        result = SelectionResult(
            questions=questions,
            pool_reset=pool_reset,
            remaining_in_pool=max(0, (total_in_pool if pool_reset else remaining) - len(questions)),
            total_in_pool=total_in_pool,
            attempted_before=attempted_before,
            requested=count,
        )

        if result.shortfall:
            logger.warning(
                f"Selection short by {result.shortfall} for subject {subject_id}",
                extra={
                    "event": "selection_shortfall",
                    "subject_id": subject_id,
                    "requested": count,
                    "received": len(questions),
                },
            )
        logger.info(
            f"Selected {len(questions)} questions for subject {subject_id}",
            extra={"event": "selection_complete", "subject_id": subject_id, **result.to_dict()},
        )
        return result

    async def _record_safely(
        self,
        ledger: AttemptedLedger,
        user_id: str | None,
        subject_id: str,
        question_ids: list[str],
    ) -> None:
        try:
            await ledger.record(user_id, subject_id, question_ids)
        except Exception as e:
            # Already-selected questions are still served; a lost write can repeat them later
            self.failed_writes += 1
            logger.error(
                f"Failed to record {len(question_ids)} attempted questions: {e}",
                extra={
                    "event": "ledger_record_failed",
                    "user_id": user_id,
                    "subject_id": subject_id,
                    "count": len(question_ids),
                    "error": str(e),
                },
                exc_info=True,
            )

    def _schedule_record(
        self,
        ledger: AttemptedLedger,
        user_id: str,
        subject_id: str,
        question_ids: list[str],
    ) -> None:
        task = asyncio.create_task(self._record_safely(ledger, user_id, subject_id, question_ids))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def drain(self) -> None:
        """Wait for every background ledger write to finish."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    async def select_proportionally(
        self,
        user_id: str | None,
        subject_id: str,
        topic_ids: list[str],
        count: int = 20,
    ) -> SelectionResult:
        """
        Select with per-topic quotas proportional to each topic's published pool.

        Quotas come from distribute_proportionally and then go through the
        exact-distribution path, so a topic that runs dry is compensated.
        """
        if count < 0:
            raise ValueError("count must be non-negative")
        unique_topics = list(dict.fromkeys(topic_ids))
        pools = await asyncio.gather(*(self.pool_cache.get_pool(topic_id) for topic_id in unique_topics))
        distribution = distribute_proportionally(
            {topic_id: len(pool) for topic_id, pool in zip(unique_topics, pools)}, count
        )
        logger.debug(
            f"Proportional quotas for subject {subject_id}: {distribution}",
            extra={"event": "proportional_quotas", "subject_id": subject_id, "quotas": distribution},
        )
        if not distribution:
            return await self.select_questions(user_id, subject_id, unique_topics, count)
        return await self.select_questions(user_id, subject_id, None, count, distribution)

    async def select_for_quick_practice(
        self,
        user_id: str | None,
        subject_id: str,
        count: int = 20,
    ) -> SelectionResult:
        """Select across every topic of the subject."""
        topic_ids = await self.store.list_topic_ids(subject_id)
        if not topic_ids:
            logger.info(
                f"Subject {subject_id} has no topics",
                extra={"event": "empty_pool", "subject_id": subject_id},
            )
            return SelectionResult(requested=count)
        return await self.select_questions(user_id, subject_id, topic_ids, count)

    async def pool_status(self, user_id: str | None, subject_id: str) -> PoolStatus:
        total = await self.store.count_subject_questions(subject_id)
        attempted = await self.ledger_for(user_id).count_attempted(user_id, subject_id)
        return PoolStatus(total=total, attempted=attempted)

    async def reset_pool(self, user_id: str | None, subject_id: str) -> int:
        """Clear the learner's history for the subject. Returns the count removed."""
        deleted = await self.ledger_for(user_id).reset(user_id, subject_id)
        logger.info(
            f"Manual pool reset for subject {subject_id}",
            extra={"event": "pool_reset", "user_id": user_id, "subject_id": subject_id, "deleted": deleted},
        )
        return deleted
