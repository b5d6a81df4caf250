"""Pydantic schemas for the selection API."""

from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from question_engine.core.config import settings
from question_engine.selection.types import PoolStatus, SelectionResult

# ============================================================================
# Requests
# ============================================================================


class SelectionRequest(BaseModel):
    """Start a practice session for an authenticated learner."""

    user_id: UUID
    subject_id: UUID
    topic_ids: list[UUID] = Field(default_factory=list)
    count: int = Field(..., ge=1, le=settings.MAX_QUESTIONS_PER_REQUEST)
    distribution: dict[UUID, int] | None = None
    # Quotas follow each topic's pool size; ignored when distribution is given
    proportional: bool = False

    @field_validator("distribution")
    @classmethod
    def validate_distribution(cls, v: dict[UUID, int] | None) -> dict[UUID, int] | None:
        if v is not None and any(count < 0 for count in v.values()):
            raise ValueError("distribution counts must be non-negative")
        return v

    @model_validator(mode="after")
    def require_topics(self) -> "SelectionRequest":
        if not self.topic_ids and not self.distribution:
            raise ValueError("topic_ids or distribution is required")
        return self


class QuickPracticeRequest(BaseModel):
    """Practice across every topic of a subject."""

    user_id: UUID
    subject_id: UUID
    count: int = Field(default=20, ge=1, le=settings.MAX_QUESTIONS_PER_REQUEST)


class PoolResetRequest(BaseModel):
    user_id: UUID
    subject_id: UUID


# ============================================================================
# Responses
# ============================================================================


class QuestionOut(BaseModel):
    id: str
    topic_id: str
    subject_id: str
    difficulty: str | None
    exam_type: str


class SelectionResponse(BaseModel):
    """Selected questions plus pool bookkeeping."""

    questions: list[QuestionOut]
    pool_reset: bool
    remaining_in_pool: int
    total_in_pool: int
    attempted_before: int
    requested: int
    shortfall: int

    @classmethod
    def from_result(cls, result: SelectionResult) -> "SelectionResponse":
        return cls(
            questions=[QuestionOut(**q.to_dict()) for q in result.questions],
            pool_reset=result.pool_reset,
            remaining_in_pool=result.remaining_in_pool,
            total_in_pool=result.total_in_pool,
            attempted_before=result.attempted_before,
            requested=result.requested,
            shortfall=result.shortfall,
        )


class PoolStatusResponse(BaseModel):
    total: int
    attempted: int
    remaining: int
    exhausted: bool

    @classmethod
    def from_status(cls, status: PoolStatus) -> "PoolStatusResponse":
        return cls(
            total=status.total,
            attempted=status.attempted,
            remaining=status.remaining,
            exhausted=status.exhausted,
        )


class PoolResetResponse(BaseModel):
    deleted: int
