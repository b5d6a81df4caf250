"""
Question selection engine.

Chooses practice questions a learner has not seen, balanced across difficulty
tiers and exam types and spread over the selected topics.
"""

from question_engine.selection.service import SelectionService
from question_engine.selection.types import PoolStatus, QuestionRecord, SelectionResult

__all__ = ["PoolStatus", "QuestionRecord", "SelectionResult", "SelectionService"]
