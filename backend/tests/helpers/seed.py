"""Test seed helpers for creating subjects, topics and questions."""

import itertools
import uuid
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from question_engine.models.question import Question, QuestionStatus
from question_engine.models.syllabus import Subject, Topic
from question_engine.selection.types import QuestionRecord

DIFFICULTY_CYCLE = ("Easy", "Medium", "Hard")


@dataclass
class SeededSubject:
    """Ids (as strings) of a seeded subject and its topics."""

    subject_id: str
    topic_ids: dict[str, str] = field(default_factory=dict)
    question_ids: dict[str, list[str]] = field(default_factory=dict)

    def topic(self, name: str) -> str:
        return self.topic_ids[name]


async def create_subject(db: AsyncSession, name: str = "Mathematics") -> Subject:
    subject = Subject(id=uuid.uuid4(), name=name, slug=f"{name.lower()}-{uuid.uuid4().hex[:6]}")
    db.add(subject)
    await db.flush()
    return subject


async def create_topic(db: AsyncSession, subject: Subject, name: str) -> Topic:
    topic = Topic(id=uuid.uuid4(), subject_id=subject.id, name=name)
    db.add(topic)
    await db.flush()
    return topic


async def create_questions(
    db: AsyncSession,
    topic: Topic,
    count: int,
    difficulties: tuple[str | None, ...] = DIFFICULTY_CYCLE,
    exam_types: tuple[str | None, ...] = ("WAEC",),
    status: QuestionStatus = QuestionStatus.PUBLISHED,
) -> list[Question]:
    """
    Create questions cycling through the given difficulties and exam types.

    Args:
        db: Database session
        topic: Owning topic
        count: Number of questions
        difficulties: Difficulty values to cycle (None = unknown)
        exam_types: Exam type values to cycle (None = General)
        status: Workflow status for every question

    Returns:
        Created questions
    """
    questions = []
    difficulty_iter = itertools.cycle(difficulties)
    exam_type_iter = itertools.cycle(exam_types)
    for i in range(count):
        question = Question(
            id=uuid.uuid4(),
            subject_id=topic.subject_id,
            topic_id=topic.id,
            stem=f"{topic.name} question {i}",
            difficulty=next(difficulty_iter),
            exam_type=next(exam_type_iter),
            status=status,
        )
        db.add(question)
        questions.append(question)
    await db.flush()
    return questions


async def seed_subject(
    session_factory: async_sessionmaker[AsyncSession],
    topic_sizes: dict[str, int],
    name: str = "Mathematics",
    exam_types: tuple[str | None, ...] = ("WAEC",),
    drafts_per_topic: int = 0,
) -> SeededSubject:
    """Create a subject with one topic per entry of topic_sizes (published question counts)."""
    async with session_factory() as db:
        subject = await create_subject(db, name)
        seeded = SeededSubject(subject_id=str(subject.id))
        for topic_name, size in topic_sizes.items():
            topic = await create_topic(db, subject, topic_name)
            questions = await create_questions(db, topic, size, exam_types=exam_types)
            if drafts_per_topic:
                await create_questions(db, topic, drafts_per_topic, status=QuestionStatus.DRAFT)
            seeded.topic_ids[topic_name] = str(topic.id)
            seeded.question_ids[topic_name] = [str(q.id) for q in questions]
        await db.commit()
    return seeded


def make_pool(
    count: int,
    topic_id: str = "topic-1",
    subject_id: str = "subject-1",
    difficulties: tuple[str | None, ...] = DIFFICULTY_CYCLE,
    exam_types: tuple[str, ...] = ("General",),
    prefix: str | None = None,
) -> list[QuestionRecord]:
    """Build in-memory question records for pure selection tests."""
    prefix = prefix or topic_id
    difficulty_iter = itertools.cycle(difficulties)
    exam_type_iter = itertools.cycle(exam_types)
    return [
        QuestionRecord(
            id=f"{prefix}-q{i}",
            topic_id=topic_id,
            subject_id=subject_id,
            difficulty=next(difficulty_iter),
            exam_type=next(exam_type_iter),
        )
        for i in range(count)
    ]


class FakeQuestionStore:
    """In-memory question source with call counting and optional failures."""

    def __init__(self, pools: dict[str, list[QuestionRecord]], subject_id: str = "subject-1"):
        self.pools = pools
        self.subject_id = subject_id
        self.fetch_calls: list[str] = []
        self.fetch_error: Exception | None = None
        self.count_error: Exception | None = None

    async def fetch_topic_pool(self, topic_id: str) -> list[QuestionRecord]:
        self.fetch_calls.append(topic_id)
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.pools.get(topic_id, []))

    async def count_subject_questions(self, subject_id: str) -> int:
        if self.count_error is not None:
            raise self.count_error
        if subject_id != self.subject_id:
            return 0
        return sum(len(pool) for pool in self.pools.values())

    async def list_topic_ids(self, subject_id: str) -> list[str]:
        return list(self.pools) if subject_id == self.subject_id else []
