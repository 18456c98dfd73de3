"""Async SQLAlchemy engine, session factory and declarative base."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for all registry tables."""


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the custom search parameter store.

    Args:
        database_url: SQLAlchemy URL, e.g. postgresql+asyncpg://... or
            sqlite+aiosqlite:///...
        echo: Log emitted SQL.
    """
    return create_async_engine(database_url, echo=echo)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to engine; sessions do not expire on commit."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all registry tables that do not exist yet."""
    # Import models so they register with Base.metadata
    import fhir_registry.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
