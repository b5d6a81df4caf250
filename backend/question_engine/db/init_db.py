"""Schema bootstrap for development, tests and the device CLI."""

from sqlalchemy.ext.asyncio import AsyncEngine

# Register models on Base.metadata
import question_engine.models  # noqa: F401
from question_engine.core.logging import get_logger
from question_engine.db.base import Base
from question_engine.db.functions import install_ledger_functions

logger = get_logger(__name__)


async def init_db(engine: AsyncEngine, install_functions: bool = True) -> list[str]:
    """
    Create missing tables and, on PostgreSQL, the ledger functions.

    Production schemas are managed by migrations; this only adds what is
    missing. Returns the names of the installed ledger functions.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        installed = await install_ledger_functions(conn) if install_functions else []
    logger.info(
        "Database initialized",
        extra={"event": "db_initialized", "dialect": engine.dialect.name, "functions": installed},
    )
    return installed
