"""
Attempted-question ledger.

Remembers which questions each learner has been served per subject.
AttemptedLedger is the shared interface; DatabaseLedger persists
authenticated learners, GuestLedger (see guest.py) keeps device-local state.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable

from sqlalchemy import and_, delete, func, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from question_engine.common.ids import to_uuid, to_uuid_list
from question_engine.core.app_exceptions import LedgerError
from question_engine.models.attempted import UserAttemptedQuestion

logger = logging.getLogger(__name__)

UNDEFINED_FUNCTION_SQLSTATE = "42883"


def unique_ids(question_ids: Iterable[str]) -> list[str]:
    """Drop duplicates, keeping first occurrence order."""
    return list(dict.fromkeys(str(q) for q in question_ids))


class AttemptedLedger(ABC):
    """Per (user, subject) set of question ids already served."""

    @abstractmethod
    async def get_attempted(self, user_id: str | None, subject_id: str) -> set[str]:
        """Ids of questions already served to the learner in this subject."""

    @abstractmethod
    async def record(self, user_id: str | None, subject_id: str, question_ids: Iterable[str]) -> int:
        """Add ids idempotently. Returns the number of distinct ids recorded."""

    @abstractmethod
    async def reset(self, user_id: str | None, subject_id: str) -> int:
        """Forget every id for the learner in this subject. Returns the count removed."""

    @abstractmethod
    async def count_attempted(self, user_id: str | None, subject_id: str) -> int:
        """Number of ids recorded for the learner in this subject."""


def is_missing_function_error(exc: DBAPIError) -> bool:
    """True when the database rejected a call because the function is not installed."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == UNDEFINED_FUNCTION_SQLSTATE:
        return True
    message = str(orig if orig is not None else exc).lower()
    if "no such function" in message:
        return True
    return "function" in message and "does not exist" in message


class DatabaseLedger(AttemptedLedger):
    """
    Ledger for authenticated learners backed by user_attempted_questions.

    Writes go through the server-side functions when installed and fall back
    to equivalent table statements otherwise. Each call uses its own session
    so background writes outlive the request that scheduled them.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._missing_functions: set[str] = set()

    @property
    def missing_functions(self) -> frozenset[str]:
        return frozenset(self._missing_functions)

    async def _call_function(self, db: AsyncSession, name: str, sql: str, params: dict):
        """
        Run a ledger function, returning (True, scalar) or (False, None) when
        the function is not installed. The session is rolled back on a miss.
        """
        if name in self._missing_functions:
            return False, None
        try:
            result = await db.execute(text(sql), params)
            return True, result.scalar()
        except DBAPIError as e:
            if not is_missing_function_error(e):
                raise
            await db.rollback()
            self._missing_functions.add(name)
            logger.warning(
                f"Ledger function {name} unavailable, using table fallback",
                extra={"event": "ledger_function_unavailable", "function": name, "error": str(e)},
            )
            return False, None

    async def get_attempted(self, user_id: str | None, subject_id: str) -> set[str]:
        user_uuid = to_uuid(user_id, "user_id")
        subject_uuid = to_uuid(subject_id, "subject_id")
        query = select(UserAttemptedQuestion.question_id).where(
            and_(
                UserAttemptedQuestion.user_id == user_uuid,
                UserAttemptedQuestion.subject_id == subject_uuid,
            )
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                return {str(row[0]) for row in result.all()}
        except SQLAlchemyError as e:
            raise LedgerError(
                "Failed to read attempted questions",
                details={"user_id": str(user_id), "subject_id": str(subject_id)},
            ) from e

    async def record(self, user_id: str | None, subject_id: str, question_ids: Iterable[str]) -> int:
        ids = unique_ids(question_ids)
        if not ids:
            return 0
        user_uuid = to_uuid(user_id, "user_id")
        subject_uuid = to_uuid(subject_id, "subject_id")
        question_uuids = to_uuid_list(ids, "question_id")

        try:
            async with self._session_factory() as db:
                called, _ = await self._call_function(
                    db,
                    "record_attempted_questions",
                    "SELECT record_attempted_questions(:user_id, :subject_id, :question_ids)",
                    {
                        "user_id": str(user_uuid),
                        "subject_id": str(subject_uuid),
                        "question_ids": [str(q) for q in question_uuids],
                    },
                )
                if not called:
                    await self._record_direct(db, user_uuid, subject_uuid, question_uuids)
                await db.commit()
        except SQLAlchemyError as e:
            raise LedgerError(
                "Failed to record attempted questions",
                details={"user_id": str(user_id), "subject_id": str(subject_id), "count": len(ids)},
            ) from e
        return len(ids)

    async def _record_direct(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        subject_id: uuid.UUID,
        question_ids: list[uuid.UUID],
    ) -> None:
        """Upsert rows: insert new triples, bump attempt_count on existing ones."""
        table = UserAttemptedQuestion.__table__
        dialect = db.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            insert = pg_insert if dialect == "postgresql" else sqlite_insert
            rows = [
                {
                    "id": uuid.uuid4(),
                    "user_id": user_id,
                    "subject_id": subject_id,
                    "question_id": question_id,
                    "attempt_count": 1,
                }
                for question_id in question_ids
            ]
            stmt = insert(table).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "subject_id", "question_id"],
                set_={
                    "attempt_count": table.c.attempt_count + 1,
                    "last_attempted_at": func.now(),
                },
            )
            await db.execute(stmt)
            return

        # Generic path: bump what exists, insert what is missing
        existing_result = await db.execute(
            select(table.c.question_id).where(
                and_(
                    table.c.user_id == user_id,
                    table.c.subject_id == subject_id,
                    table.c.question_id.in_(question_ids),
                )
            )
        )
        existing = {row[0] for row in existing_result.all()}
        if existing:
            await db.execute(
                update(table)
                .where(
                    and_(
                        table.c.user_id == user_id,
                        table.c.subject_id == subject_id,
                        table.c.question_id.in_(existing),
                    )
                )
                .values(attempt_count=table.c.attempt_count + 1, last_attempted_at=func.now())
            )
        for question_id in question_ids:
            if question_id not in existing:
                db.add(
                    UserAttemptedQuestion(
                        user_id=user_id,
                        subject_id=subject_id,
                        question_id=question_id,
                        attempt_count=1,
                    )
                )
        await db.flush()

    async def reset(self, user_id: str | None, subject_id: str) -> int:
        user_uuid = to_uuid(user_id, "user_id")
        subject_uuid = to_uuid(subject_id, "subject_id")
        try:
            async with self._session_factory() as db:
                called, deleted = await self._call_function(
                    db,
                    "reset_user_attempted_questions",
                    "SELECT reset_user_attempted_questions(:user_id, :subject_id)",
                    {"user_id": str(user_uuid), "subject_id": str(subject_uuid)},
                )
                if not called:
                    result = await db.execute(
                        delete(UserAttemptedQuestion).where(
                            and_(
                                UserAttemptedQuestion.user_id == user_uuid,
                                UserAttemptedQuestion.subject_id == subject_uuid,
                            )
                        )
                    )
                    deleted = result.rowcount
                await db.commit()
        except SQLAlchemyError as e:
            raise LedgerError(
                "Failed to reset attempted questions",
                details={"user_id": str(user_id), "subject_id": str(subject_id)},
            ) from e
        return int(deleted or 0)

    async def count_attempted(self, user_id: str | None, subject_id: str) -> int:
        user_uuid = to_uuid(user_id, "user_id")
        subject_uuid = to_uuid(subject_id, "subject_id")
        try:
            async with self._session_factory() as db:
                called, count = await self._call_function(
                    db,
                    "get_attempted_question_count",
                    "SELECT get_attempted_question_count(:user_id, :subject_id)",
                    {"user_id": str(user_uuid), "subject_id": str(subject_uuid)},
                )
                if not called:
                    result = await db.execute(
                        select(func.count(UserAttemptedQuestion.id)).where(
                            and_(
                                UserAttemptedQuestion.user_id == user_uuid,
                                UserAttemptedQuestion.subject_id == subject_uuid,
                            )
                        )
                    )
                    count = result.scalar()
        except SQLAlchemyError as e:
            raise LedgerError(
                "Failed to count attempted questions",
                details={"user_id": str(user_id), "subject_id": str(subject_id)},
            ) from e
        return int(count or 0)
