"""API v1 router - includes all v1 endpoints."""

from fastapi import APIRouter

from question_engine.api.v1.endpoints import health, selection

api_router = APIRouter()

api_router.include_router(health.router, prefix="", tags=["Health"])
api_router.include_router(selection.router, prefix="/selection", tags=["Selection"])
