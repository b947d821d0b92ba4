"""Database engine and session factory management."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from tournament_admin.config import Settings
from tournament_admin.models.base import Base
from tournament_admin.utils.json_utils import json_dumps, json_loads


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for ``settings.database_url``.

    SQLite URLs (tests, local runs) use NullPool since aiosqlite
    connections are cheap and pool sizing options do not apply.
    """
    if not settings.database_url:
        raise ValueError("database_url is not configured")

    if settings.database_url.startswith("sqlite"):
        return create_async_engine(
            settings.database_url,
            poolclass=NullPool,
            json_serializer=json_dumps,
            json_deserializer=json_loads,
            future=True,
        )

    return create_async_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        echo=False,
        json_serializer=json_dumps,
        json_deserializer=json_loads,
        future=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory for the document store."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create tables if they do not exist yet."""
    # Import models so they register with Base
    from tournament_admin.models import document  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    """Close database connection pool."""
    await engine.dispose()
