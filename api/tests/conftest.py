"""Pytest configuration and shared fixtures.

This module provides:
- An in-memory SQLite database (aiosqlite) with foreign keys enforced, one
  fresh schema per test
- Async session fixtures for repository/service tests
- FastAPI test client for route integration tests
- Auth fixtures that stand in for the session cookie
- A temporary image storage directory
"""

# Set environment variables BEFORE any imports that trigger Settings validation
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("REQUIRE_HTTPS", "false")
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")

from collections.abc import AsyncGenerator, Callable, Generator
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from core.auth import require_auth
from core.config import clear_settings_cache
from core.database import Base, enable_sqlite_foreign_keys
from core.wide_event import init_wide_event
from services.dashboard_service import clear_dashboard_cache
from services.image_storage import LocalImageStorage, get_image_storage

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture(autouse=True)
def setup_wide_event():
    """Initialize wide_event context for all tests.

    Services use set_wide_event_fields() which requires context initialization.
    In production this is done by middleware; in tests we do it here.
    """
    init_wide_event()
    yield


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine]:
    """In-memory database shared by every session of one test.

    StaticPool keeps a single connection so the schema and data survive
    across sessions (the test's session and the app's request sessions).
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Session for repository/service tests.

    Mirrors the request session: autoflush off, nothing committed unless the
    test commits. The schema is thrown away with the engine.
    """
    session = session_maker()
    try:
        yield session
    finally:
        await session.close()


# =============================================================================
# Image storage
# =============================================================================


@pytest.fixture
def image_storage(tmp_path: Path) -> LocalImageStorage:
    return LocalImageStorage(tmp_path / "uploads", "/uploads/steps")


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def app(
    test_engine: AsyncEngine,
    session_maker: async_sessionmaker[AsyncSession],
    image_storage: LocalImageStorage,
) -> AsyncGenerator[FastAPI]:
    """FastAPI app wired to the test database and a temporary upload dir."""
    # Import here so the env vars above are applied before Settings loads
    from main import app as fastapi_app

    fastapi_app.state.engine = test_engine
    fastapi_app.state.session_maker = session_maker
    fastapi_app.state.init_done = True
    fastapi_app.state.init_error = None
    fastapi_app.dependency_overrides[get_image_storage] = lambda: image_storage

    yield fastapi_app

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def login_as(app: FastAPI) -> Callable[[int], None]:
    """Authenticate subsequent requests as the given user id.

    Stands in for the session cookie written by the external login flow.
    """

    def _login(user_id: int) -> None:
        app.dependency_overrides[require_auth] = lambda: user_id

    return _login


@pytest_asyncio.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Async HTTP client. Unauthenticated until ``login_as`` is called."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# =============================================================================
# Utility Fixtures
# =============================================================================


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio backend for anyio (required by httpx)."""
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None]:
    """Reset settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_dashboard_cache() -> Generator[None]:
    """Dashboard snapshots are cached per process; start every test empty."""
    clear_dashboard_cache()
    yield
    clear_dashboard_cache()
