"""Pytest configuration and shared fixtures."""

import os
import random
import tempfile
from collections.abc import AsyncGenerator

# Settings are read at import time; keep tests off Redis and the user's home directory
os.environ["ENV"] = "test"
os.environ["REDIS_ENABLED"] = "false"
os.environ["SELECTION_LOCK_ENABLED"] = "false"
os.environ.setdefault("GUEST_STORAGE_DIR", tempfile.mkdtemp(prefix="question-engine-guest-"))

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from question_engine.core.dependencies import get_selection_service
from question_engine.db.init_db import init_db
from question_engine.db.session import create_session_factory
from question_engine.main import create_app
from question_engine.selection.guest import GuestLedger, MemoryStorage
from question_engine.selection.ledger import DatabaseLedger
from question_engine.selection.repo import QuestionStore
from question_engine.selection.service import SelectionService

# Configure pytest-asyncio
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """SQLite database file per test, schema created up front."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory) -> QuestionStore:
    return QuestionStore(session_factory)


@pytest.fixture
def db_ledger(session_factory) -> DatabaseLedger:
    return DatabaseLedger(session_factory)


@pytest.fixture
def guest_ledger() -> GuestLedger:
    return GuestLedger(MemoryStorage())


@pytest.fixture
async def service(store, db_ledger, guest_ledger, rng) -> AsyncGenerator[SelectionService, None]:
    """Selection service over the test database, background writes drained on teardown."""
    selection_service = SelectionService(
        store=store,
        database_ledger=db_ledger,
        guest_ledger=guest_ledger,
        rng=rng,
        lock_enabled=False,
    )
    yield selection_service
    await selection_service.drain()


@pytest.fixture
async def async_client(service) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against a fresh app bound to the test service."""
    app = create_app()
    app.dependency_overrides[get_selection_service] = lambda: service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
