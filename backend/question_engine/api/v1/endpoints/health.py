"""Liveness and readiness checks."""

from typing import Literal

from fastapi import APIRouter, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from question_engine.core.config import settings
from question_engine.core.errors import get_request_id
from question_engine.core.redis_client import is_redis_available
from question_engine.db.session import get_session_factory

router = APIRouter(tags=["Health"])

CheckStatus = Literal["ok", "degraded", "down"]


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"


class ReadinessCheck(BaseModel):
    status: CheckStatus
    message: str | None = None


class ReadinessResponse(BaseModel):
    status: CheckStatus
    checks: dict[str, ReadinessCheck]
    request_id: str


@router.get("/health", response_model=HealthResponse, summary="Liveness")
async def health_check() -> HealthResponse:
    """Process is up. Touches no dependencies."""
    return HealthResponse()


async def _check_database() -> ReadinessCheck:
    try:
        async with get_session_factory()() as db:
            await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        return ReadinessCheck(status="down", message=str(e))
    return ReadinessCheck(status="ok")


def _check_redis() -> ReadinessCheck:
    if is_redis_available():
        return ReadinessCheck(status="ok")
    # Only strict selection mode needs Redis
    return ReadinessCheck(status="down" if settings.REDIS_REQUIRED else "degraded", message="Redis unavailable")


@router.get("/ready", response_model=ReadinessResponse, summary="Readiness")
async def readiness_check(request: Request) -> ReadinessResponse:
    """Question store reachable and, when enabled, Redis."""
    checks = {"db": await _check_database()}
    if settings.REDIS_ENABLED:
        checks["redis"] = _check_redis()

    statuses = {check.status for check in checks.values()}
    overall: CheckStatus = "down" if "down" in statuses else "degraded" if "degraded" in statuses else "ok"
    return ReadinessResponse(status=overall, checks=checks, request_id=get_request_id(request))
