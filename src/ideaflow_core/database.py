"""Database engine and session factory management."""
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .models import Base


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create the async database engine.

    SQLite URLs get no pool tuning; server databases get the conservative pool
    settings used for hosted Postgres.
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo, future=True)

    return create_async_engine(
        database_url,
        echo=echo,
        future=True,
        pool_pre_ping=True,          # Verify connections before using
        pool_size=3,                 # Base pool of 3 connections
        max_overflow=7,              # Allow up to 10 total connections
        pool_recycle=3600,           # Recycle connections every hour
        pool_timeout=30,             # Timeout after 30 seconds
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory bound to ``engine``."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_models(engine: AsyncEngine, drop_first: bool = False) -> None:
    """
    Create all tables for the declared models.

    Production deployments use the Alembic migrations; this is for local
    SQLite databases and tests.
    """
    async with engine.begin() as conn:
        if drop_first:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def dispose(engine: Optional[AsyncEngine]) -> None:
    """Dispose an engine if one was created."""
    if engine is not None:
        await engine.dispose()
