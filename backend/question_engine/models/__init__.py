"""Database models."""

from question_engine.models.attempted import UserAttemptedQuestion
from question_engine.models.question import DEFAULT_EXAM_TYPE, Difficulty, Question, QuestionStatus
from question_engine.models.syllabus import Subject, Topic

__all__ = [
    "DEFAULT_EXAM_TYPE",
    "Difficulty",
    "Question",
    "QuestionStatus",
    "Subject",
    "Topic",
    "UserAttemptedQuestion",
]
