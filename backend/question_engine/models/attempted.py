"""Attempted-question ledger model."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from question_engine.db.base import Base


class UserAttemptedQuestion(Base):
    """One row per (user, subject, question) a learner has been served."""

    __tablename__ = "user_attempted_questions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False)
    subject_id = Column(Uuid(as_uuid=True), ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    question_id = Column(Uuid(as_uuid=True), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    first_attempted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_attempted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    attempt_count = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("user_id", "subject_id", "question_id", name="uq_user_subject_question"),
        Index("ix_user_attempted_user_subject", "user_id", "subject_id"),
        Index("ix_user_attempted_last", "user_id", "last_attempted_at"),
    )
