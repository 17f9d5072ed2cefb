"""Shared fixtures for API tests."""
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.user import User
from services.thumbnail_services import ThumbnailServices
from tests.fakes import FakeRedis

IDENTITY_HEADER = "X-Authenticated-User"


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    thumbnail_services: ThumbnailServices,
    fake_redis: FakeRedis,
    user: User,
) -> AsyncGenerator[AsyncClient]:
    """
    Test client authenticated as `user`.

    ASGITransport doesn't run the lifespan, so the objects it would build are
    installed on app.state directly. Each request gets its own session that is
    committed at the end, like the real dependency, because the thumbnail store
    reads and writes through separate sessions.
    """
    # Clear the settings cache so it picks up DATABASE_URL from environment
    from core.config import get_settings

    get_settings.cache_clear()

    from api.main import app
    from db.session import commit_session, get_async_session, rollback_session

    async def override_get_async_session() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await commit_session(session)
            except Exception:
                await rollback_session(session)
                raise

    app.dependency_overrides[get_async_session] = override_get_async_session
    app.state.thumbnails = thumbnail_services
    app.state.redis = fake_redis

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={IDENTITY_HEADER: user.external_id},
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
