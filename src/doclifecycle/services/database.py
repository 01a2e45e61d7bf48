"""Async engine helpers for the relational store.

Uses SQLAlchemy's native async support; SQLite goes through aiosqlite and
PostgreSQL through asyncpg-compatible URLs supplied by the caller.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

# Registers the tables on SQLModel.metadata.
from doclifecycle.models import tables  # noqa: F401


def create_async_engine_from_url(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async SQLAlchemy engine for a full database URL."""
    return create_async_engine(url, echo=echo)


def create_async_engine_from_path(db_path: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine for the given SQLite database path.

    Args:
        db_path: Path to SQLite database file, or ":memory:" for in-memory.

    Returns:
        AsyncEngine instance configured for aiosqlite.
    """
    if db_path == ":memory:":
        # aiosqlite keeps a single shared connection for in-memory databases,
        # so every session sees the same data.
        url = "sqlite+aiosqlite:///:memory:"
    else:
        url = f"sqlite+aiosqlite:///{db_path}"
    return create_async_engine(url)


async def create_schema(engine: AsyncEngine) -> None:
    """Create envelope and version tables, including partial unique indexes."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
