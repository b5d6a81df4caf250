"""Syllabus models (Subject and Topic)."""

import uuid

from sqlalchemy import Column, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship

from question_engine.db.base import Base


class Subject(Base):
    """Subject model."""

    __tablename__ = "subjects"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    slug = Column(String(200), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="published")

    topics = relationship("Topic", back_populates="subject")


class Topic(Base):
    """Topic model. Groups questions inside a subject."""

    __tablename__ = "topics"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    subject_id = Column(Uuid(as_uuid=True), ForeignKey("subjects.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default="published")

    subject = relationship("Subject", back_populates="topics")
    questions = relationship("Question", back_populates="topic")
