from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import sessionmaker

from .settings import get_settings


def get_engine_url(url: str | None = None) -> str:
    url = url or get_settings().database_url
    if url.startswith("sqlite:///") and not url.startswith("sqlite+aiosqlite:///"):
        # Use aiosqlite for async support
        url = url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


def make_engine(url: str | None = None) -> AsyncEngine:
    return create_async_engine(get_engine_url(url), echo=get_settings().sql_echo, future=True)


def make_sessionmaker(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind, class_=AsyncSession, expire_on_commit=False, autoflush=False, autocommit=False
    )


engine = make_engine()

AsyncSessionLocal = make_sessionmaker(engine)


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


async def create_tables(bind: AsyncEngine) -> None:
    # Import for side effects: registers every table on SQLModel.metadata
    from . import models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def init_db() -> None:
    await create_tables(engine)


async def reset_db() -> None:
    from . import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)
