"""Database session management."""

from __future__ import annotations

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from ..core.config import settings

DATABASE_URL = settings.database_url or "sqlite+aiosqlite:///./nodeflow.db"


def create_session_factory(database_url: str, echo: bool = False) -> tuple[AsyncEngine, sessionmaker]:
    """Create an async engine and a session factory bound to it."""
    db_engine = create_async_engine(database_url, echo=echo, future=True)
    factory = sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    return db_engine, factory


engine, async_session_factory = create_session_factory(DATABASE_URL, echo=settings.debug)


async def init_db(db_engine: AsyncEngine | None = None) -> None:
    """Initialize database tables."""
    async with (db_engine or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session."""
    async with async_session_factory() as session:
        yield session
