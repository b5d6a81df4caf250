"""ASGI application for the selection service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from question_engine import __version__
from question_engine.api.v1.router import api_router
from question_engine.common.request_id import RequestIDMiddleware
from question_engine.core.config import settings
from question_engine.core.dependencies import shutdown_selection_service
from question_engine.core.errors import (
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    value_error_handler,
)
from question_engine.core.logging import get_logger, setup_logging
from question_engine.core.redis_client import init_redis
from question_engine.db.engine import dispose_engine, get_engine
from question_engine.db.init_db import init_db

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    init_redis()
    if settings.ENV == "dev":
        # Other environments provision the schema ahead of deploy
        await init_db(get_engine())
    logger.info("Selection service started", extra={"event": "startup", "env": settings.ENV})
    yield
    await shutdown_selection_service()
    await dispose_engine()
    logger.info("Selection service stopped", extra={"event": "shutdown"})


def create_app() -> FastAPI:
    """Build the app. Tests call this directly and override get_selection_service."""
    show_docs = settings.ENV != "prod"
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=__version__,
        description="Adaptive question selection for practice sessions",
        openapi_url="/openapi.json" if show_docs else None,
        docs_url="/docs" if show_docs else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    # Last added runs first: CORS wraps the request id middleware
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )

    for exc_class, handler in (
        (RequestValidationError, validation_exception_handler),
        (HTTPException, http_exception_handler),
        (ValueError, value_error_handler),
        (Exception, general_exception_handler),
    ):
        app.add_exception_handler(exc_class, handler)

    app.include_router(api_router, prefix=settings.API_PREFIX)

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "service": settings.PROJECT_NAME,
            "version": __version__,
            "api_prefix": settings.API_PREFIX,
        }

    return app


app = create_app()
