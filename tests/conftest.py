"""Pytest fixtures for testing."""
import os

# Must be set before any app imports that trigger Settings validation
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEV_MODE"] = "true"
os.environ["REDIS_ENABLED"] = "false"

from collections.abc import AsyncGenerator  # noqa: E402
from pathlib import Path  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker  # noqa: E402

from core.config import Settings  # noqa: E402
from db.session import build_engine  # noqa: E402
from models.base import Base  # noqa: E402
from models.user import User  # noqa: E402
from services.thumbnail_services import ThumbnailServices, build_thumbnail_services  # noqa: E402
from tests.fakes import BLOB_BASE_URL, RENDER_API_URL, FakeClock, FakeRedis  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def fake_redis() -> FakeRedis:
    """In-memory persistent cache tier."""
    return FakeRedis()


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """
    Create a fresh in-memory SQLite engine with all tables.

    Every session shares the one connection that holds the in-memory database.
    """
    engine = build_engine("sqlite+aiosqlite://")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """A session for direct setup and assertions."""
    async with session_factory() as session:
        yield session


async def create_user(
    session_factory: async_sessionmaker[AsyncSession], external_id: str,
) -> User:
    """Insert and commit a user."""
    async with session_factory() as session:
        user = User(external_id=external_id, email=f"{external_id}@example.com")
        session.add(user)
        await session.commit()
        return user


@pytest.fixture
async def user(session_factory: async_sessionmaker[AsyncSession]) -> User:
    """A committed test user."""
    return await create_user(session_factory, "user-one")


@pytest.fixture
async def other_user(session_factory: async_sessionmaker[AsyncSession]) -> User:
    """A second committed test user."""
    return await create_user(session_factory, "user-two")


@pytest.fixture
async def http_client() -> AsyncGenerator[httpx.AsyncClient]:
    """Shared outbound HTTP client (mock with respx in tests)."""
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def app_settings(tmp_path: Path) -> Settings:
    """Settings pointing the blob store at a temp dir and the renderer at a fake host."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite://",
        SCREENSHOT_API_URL=RENDER_API_URL,
        SCREENSHOT_API_KEY="test-key",
        BLOB_STORAGE_DIR=str(tmp_path / "blobs"),
        BLOB_PUBLIC_BASE_URL=BLOB_BASE_URL,
    )


@pytest.fixture
def thumbnail_services(
    app_settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    fake_redis: FakeRedis,
    http_client: httpx.AsyncClient,
    clock: FakeClock,
) -> ThumbnailServices:
    """Fully wired thumbnail services backed by fakes."""
    return build_thumbnail_services(
        app_settings, session_factory, fake_redis, http_client, clock=clock,
    )
