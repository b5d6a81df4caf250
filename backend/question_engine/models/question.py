"""Question bank model."""

import uuid
from enum import Enum as PyEnum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from question_engine.db.base import Base


class QuestionStatus(str, PyEnum):
    """Question workflow status."""

    DRAFT = "DRAFT"
    IN_REVIEW = "IN_REVIEW"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class Difficulty(str, PyEnum):
    """Difficulty tier. A missing tier is stored as NULL."""

    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


DEFAULT_EXAM_TYPE = "General"


class Question(Base):
    """Practice question. Read-only from the selection engine's perspective."""

    __tablename__ = "questions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    subject_id = Column(Uuid(as_uuid=True), ForeignKey("subjects.id"), nullable=False)
    topic_id = Column(Uuid(as_uuid=True), ForeignKey("topics.id"), nullable=False)
    stem = Column(Text, nullable=True)
    difficulty = Column(String(20), nullable=True)  # Easy / Medium / Hard, NULL = unknown
    exam_type = Column(String(50), nullable=True)  # NULL = "General"
    status = Column(
        Enum(QuestionStatus, name="question_status"),
        nullable=False,
        default=QuestionStatus.DRAFT,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    topic = relationship("Topic", back_populates="questions")

    __table_args__ = (
        Index("ix_questions_topic_status", "topic_id", "status"),
        Index("ix_questions_subject_status", "subject_id", "status"),
    )
