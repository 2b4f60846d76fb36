"""Database engine and session factories."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from callsync.config import Settings


class Base(DeclarativeBase):
    pass


def create_engine(settings: Settings) -> Optional[AsyncEngine]:
    """Build the async engine, or ``None`` when no database is configured."""
    if not settings.database_url:
        return None
    return create_async_engine(
        settings.database_url,
        echo=False,
        future=True,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    # Import so every table is registered on Base.metadata.
    import callsync.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def get_session_maker(request: Request) -> Optional[async_sessionmaker[AsyncSession]]:
    """FastAPI dependency returning the app's session factory, if any."""
    return getattr(request.app.state, "session_maker", None)


@asynccontextmanager
async def lifespan_db(engine: Optional[AsyncEngine]) -> AsyncGenerator[None, None]:
    if engine is None:
        yield
        return
    await init_models(engine)
    try:
        yield
    finally:
        await engine.dispose()
