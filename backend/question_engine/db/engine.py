"""Database engine configuration."""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from question_engine.core.config import settings

_engine: AsyncEngine | None = None


def create_db_engine(database_url: str | None = None) -> AsyncEngine:
    """Create async SQLAlchemy engine."""
    url = database_url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        # SQLite has no connection pool sizing
        return create_async_engine(url, echo=settings.DATABASE_ECHO)
    return create_async_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10,
        echo=settings.DATABASE_ECHO,
    )


def get_engine() -> AsyncEngine:
    """Global engine instance, created on first use."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


async def dispose_engine() -> None:
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
