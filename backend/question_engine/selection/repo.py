"""
Question store for the selection engine.

Read-only queries over published questions:
- Published questions of a topic (pool fetch)
- Published question count of a subject (pool size)
- Topic ids of a subject (quick practice)
"""

import logging
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from question_engine.common.ids import to_uuid
from question_engine.core.app_exceptions import QuestionStoreError
from question_engine.models.question import DEFAULT_EXAM_TYPE, Question, QuestionStatus
from question_engine.models.syllabus import Topic
from question_engine.selection.types import QuestionRecord

logger = logging.getLogger(__name__)


def to_record(row) -> QuestionRecord:
    """Build an immutable record from a question row."""
    return QuestionRecord(
        id=str(row.id),
        topic_id=str(row.topic_id),
        subject_id=str(row.subject_id),
        difficulty=row.difficulty or None,
        exam_type=row.exam_type or DEFAULT_EXAM_TYPE,
    )


async def get_published_questions_for_topic(
    db: AsyncSession,
    topic_id: UUID,
) -> list[QuestionRecord]:
    """
    Get every published question of a topic.

    Ordered by creation time then id so repeated fetches agree.

    Args:
        db: Database session
        topic_id: Topic ID

    Returns:
        List of QuestionRecord
    """
    query = (
        select(
            Question.id,
            Question.topic_id,
            Question.subject_id,
            Question.difficulty,
            Question.exam_type,
        )
        .where(
            and_(
                Question.topic_id == topic_id,
                Question.status == QuestionStatus.PUBLISHED,
            )
        )
        .order_by(Question.created_at, Question.id)
    )

    result = await db.execute(query)
    return [to_record(row) for row in result.all()]


async def count_subject_questions(db: AsyncSession, subject_id: UUID) -> int:
    """Count published questions of a subject."""
    query = select(func.count(Question.id)).where(
        and_(
            Question.subject_id == subject_id,
            Question.status == QuestionStatus.PUBLISHED,
        )
    )
    result = await db.execute(query)
    return result.scalar() or 0


async def list_subject_topic_ids(db: AsyncSession, subject_id: UUID) -> list[str]:
    """Topic ids of a subject, ordered by name for determinism."""
    query = select(Topic.id).where(Topic.subject_id == subject_id).order_by(Topic.name, Topic.id)
    result = await db.execute(query)
    return [str(row[0]) for row in result.all()]


class QuestionStore:
    """
    Session-per-call facade over the store queries.

    Each call opens its own session so per-topic fetches can run
    concurrently. Database failures surface as QuestionStoreError.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def fetch_topic_pool(self, topic_id: str) -> list[QuestionRecord]:
        topic_uuid = to_uuid(topic_id, "topic_id")
        try:
            async with self._session_factory() as db:
                return await get_published_questions_for_topic(db, topic_uuid)
        except SQLAlchemyError as e:
            logger.error(
                f"Question fetch failed for topic {topic_id}",
                extra={"event": "question_store_error", "topic_id": topic_id, "error": str(e)},
            )
            raise QuestionStoreError(
                "Failed to fetch questions", details={"topic_id": topic_id}
            ) from e

    async def count_subject_questions(self, subject_id: str) -> int:
        subject_uuid = to_uuid(subject_id, "subject_id")
        try:
            async with self._session_factory() as db:
                return await count_subject_questions(db, subject_uuid)
        except SQLAlchemyError as e:
            logger.error(
                f"Question count failed for subject {subject_id}",
                extra={"event": "question_store_error", "subject_id": subject_id, "error": str(e)},
            )
            raise QuestionStoreError(
                "Failed to count questions", details={"subject_id": subject_id}
            ) from e

    async def list_topic_ids(self, subject_id: str) -> list[str]:
        subject_uuid = to_uuid(subject_id, "subject_id")
        try:
            async with self._session_factory() as db:
                return await list_subject_topic_ids(db, subject_uuid)
        except SQLAlchemyError as e:
            raise QuestionStoreError(
                "Failed to list topics", details={"subject_id": subject_id}
            ) from e
