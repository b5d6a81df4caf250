"""Value types shared by the selection components."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class QuestionRecord:
    """A published question as seen by the selector. Never a live ORM row."""

    id: str
    topic_id: str
    subject_id: str
    difficulty: str | None = None  # "Easy" / "Medium" / "Hard" / None = unknown
    exam_type: str = "General"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "topic_id": self.topic_id,
            "subject_id": self.subject_id,
            "difficulty": self.difficulty,
            "exam_type": self.exam_type,
        }


@dataclass
class SelectionResult:
    """Outcome of one orchestrated selection."""

    questions: list[QuestionRecord] = field(default_factory=list)
    pool_reset: bool = False
    remaining_in_pool: int = 0
    total_in_pool: int = 0
    attempted_before: int = 0
    requested: int = 0

    @property
    def shortfall(self) -> int:
        """How many fewer questions were returned than requested."""
        return max(0, self.requested - len(self.questions))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for logging."""
        return {
            "question_count": len(self.questions),
            "pool_reset": self.pool_reset,
            "remaining_in_pool": self.remaining_in_pool,
            "total_in_pool": self.total_in_pool,
            "attempted_before": self.attempted_before,
            "requested": self.requested,
            "shortfall": self.shortfall,
        }


@dataclass
class PoolStatus:
    """How much of a subject's pool a learner has left."""

    total: int
    attempted: int

    @property
    def remaining(self) -> int:
        return max(0, self.total - self.attempted)

    @property
    def exhausted(self) -> bool:
        return self.total > 0 and self.remaining == 0
