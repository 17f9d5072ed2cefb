"""
Create database tables for local development.

Usage:
    python -m db.init_db
"""
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from models import Base

logger = logging.getLogger(__name__)


async def create_tables(engine: AsyncEngine) -> None:
    """Create every table that doesn't exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Created tables: %s", ", ".join(sorted(Base.metadata.tables)))


async def _run() -> None:
    from db.session import engine

    try:
        await create_tables(engine)
    finally:
        await engine.dispose()


def main() -> None:
    """Entry point for running table creation as a script."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(_run())


if __name__ == "__main__":
    main()
