"""Async SQLAlchemy engine and session factory."""
from collections.abc import AsyncGenerator, Awaitable, Callable

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from core.config import get_settings

AFTER_COMMIT_KEY = "after_commit"

AfterCommitCallback = Callable[[], Awaitable[None]]


def build_engine(database_url: str) -> AsyncEngine:
    """
    Create the async engine for a database URL.

    PostgreSQL gets a pre-pinged connection pool. SQLite is used for local runs; an
    in-memory SQLite database only exists on one connection, so it is pinned with
    StaticPool.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url.rstrip("/").endswith(":"):
            kwargs["poolclass"] = StaticPool
        return create_async_engine(database_url, echo=False, **kwargs)
    return create_async_engine(database_url, echo=False, pool_pre_ping=True)


engine = build_engine(get_settings().database_url)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the factory used by services that commit through their own sessions."""
    return async_session_factory


def run_after_commit(session: AsyncSession, callback: AfterCommitCallback) -> None:
    """
    Queue an async callback to run once the session's transaction commits.

    Callbacks are discarded on rollback. Only commit_session() runs them.
    """
    session.info.setdefault(AFTER_COMMIT_KEY, []).append(callback)


async def commit_session(session: AsyncSession) -> None:
    """Commit the session, then run the callbacks queued with run_after_commit()."""
    await session.commit()
    callbacks = session.info.pop(AFTER_COMMIT_KEY, [])
    for callback in callbacks:
        await callback()


async def rollback_session(session: AsyncSession) -> None:
    """Roll back the session and drop any queued after-commit callbacks."""
    session.info.pop(AFTER_COMMIT_KEY, None)
    await session.rollback()


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """
    Yield the request-scoped session.

    Services flush, and the single commit happens here when the request finishes, so
    a failed request leaves no bookmark changes behind. Thumbnail metadata is not
    written through this session. Cache invalidations queued by the services run
    after the commit, once other workers can see the change.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await commit_session(session)
        except Exception:
            await rollback_session(session)
            raise
