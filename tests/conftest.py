"""Shared test fixtures.

Every test gets a fresh in-memory SQLite database built from the ORM
metadata. The API client shares the test's session, so assertions see
exactly what the routes wrote.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator

os.environ.setdefault("QUIZ_JWT_SECRET", "test-secret-key-with-enough-length-1234")
os.environ.setdefault("QUIZ_LOG_FORMAT", "console")
os.environ.setdefault("QUIZ_ENVIRONMENT", "test")

import pytest  # noqa: E402
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from quizarena.config import get_settings
from quizarena.database import get_session
from quizarena.db import models  # noqa: F401
from quizarena.db.base import Base

get_settings.cache_clear()


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's implicit transaction handling breaks SAVEPOINT; take over BEGIN.
    @event.listens_for(eng.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record):  # noqa: ANN001
        dbapi_connection.isolation_level = None

    @event.listens_for(eng.sync_engine, "begin")
    def _on_begin(conn):  # noqa: ANN001
        conn.exec_driver_sql("BEGIN")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """A session on the fresh database."""
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, with ``get_session`` bound to ``db_session``."""
    from quizarena.main import create_app

    app = create_app(with_lifespan=False)

    async def _override() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_session] = _override
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def settings():
    """Live settings object; tests may monkeypatch its attributes."""
    return get_settings()


@pytest_asyncio.fixture
async def user(db_session: AsyncSession):
    from tests.factories import make_user

    return await make_user(db_session)


@pytest_asyncio.fixture
async def authed_client(client: AsyncClient, user) -> AsyncClient:
    """Client authenticated as ``user``."""
    from quizarena.auth.jwt import create_access_token

    client.headers["Authorization"] = f"Bearer {create_access_token(user.id, user.external_id)}"
    return client
