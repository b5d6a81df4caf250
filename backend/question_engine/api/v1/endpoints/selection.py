"""Selection endpoints for authenticated learners."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from question_engine.core.dependencies import get_selection_service
from question_engine.schemas.selection import (
    PoolResetRequest,
    PoolResetResponse,
    PoolStatusResponse,
    QuickPracticeRequest,
    SelectionRequest,
    SelectionResponse,
)
from question_engine.selection.service import SelectionService

logger = logging.getLogger(__name__)

router = APIRouter()

Service = Annotated[SelectionService, Depends(get_selection_service)]


@router.post("/sessions", response_model=SelectionResponse)
async def create_selection(request: SelectionRequest, service: Service) -> SelectionResponse:
    """
    Select questions for a new practice session.

    With a distribution the per-topic quotas are honoured (compensating from
    other topics when one runs dry); otherwise count is spread over topic_ids.
    proportional sizes the quotas from each topic's pool instead.
    A shortfall > 0 means the pool could not supply the full count.
    """
    distribution = (
        {str(topic_id): count for topic_id, count in request.distribution.items()}
        if request.distribution
        else None
    )
    topic_ids = [str(topic_id) for topic_id in request.topic_ids]
    if request.proportional and distribution is None:
        result = await service.select_proportionally(
            user_id=str(request.user_id),
            subject_id=str(request.subject_id),
            topic_ids=topic_ids,
            count=request.count,
        )
    else:
        result = await service.select_questions(
            user_id=str(request.user_id),
            subject_id=str(request.subject_id),
            topic_ids=topic_ids,
            count=request.count,
            distribution=distribution,
        )
    return SelectionResponse.from_result(result)


@router.post("/quick-practice", response_model=SelectionResponse)
async def quick_practice(request: QuickPracticeRequest, service: Service) -> SelectionResponse:
    """Select questions across every topic of the subject."""
    result = await service.select_for_quick_practice(
        user_id=str(request.user_id),
        subject_id=str(request.subject_id),
        count=request.count,
    )
    return SelectionResponse.from_result(result)


@router.get("/pool-status", response_model=PoolStatusResponse)
async def pool_status(
    service: Service,
    user_id: Annotated[UUID, Query()],
    subject_id: Annotated[UUID, Query()],
) -> PoolStatusResponse:
    status = await service.pool_status(str(user_id), str(subject_id))
    return PoolStatusResponse.from_status(status)


@router.post("/reset", response_model=PoolResetResponse)
async def reset_pool(request: PoolResetRequest, service: Service) -> PoolResetResponse:
    """Clear the learner's attempted history for the subject."""
    deleted = await service.reset_pool(str(request.user_id), str(request.subject_id))
    return PoolResetResponse(deleted=deleted)
