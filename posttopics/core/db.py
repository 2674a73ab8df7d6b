"""Database module with async SQLAlchemy engine and session management."""

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .settings import get_settings

# SQLAlchemy base for models
Base = declarative_base()


@lru_cache()
def get_engine() -> AsyncEngine:
    """Get the application async engine (created on first use)."""
    settings = get_settings()
    return create_async_engine(
        settings.db_url,
        echo=settings.debug,
        pool_size=10,
        max_overflow=20,
    )


@lru_cache()
def get_session_factory() -> async_sessionmaker:
    """Get the async session maker bound to the application engine."""
    return make_session_factory(get_engine())


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Build a session maker for an arbitrary engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_all(engine: AsyncEngine = None) -> None:
    """Create all tables in the database."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


