from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from ..settings import settings

Base = declarative_base()


def build_engine(url: str | None = None) -> AsyncEngine:
    target = url or settings.async_database_url
    options: dict[str, object] = {"future": True, "echo": False, "pool_pre_ping": True}
    if target.startswith("sqlite"):
        # aiosqlite connections are bound to the loop that opened them; never pool them
        options["poolclass"] = NullPool
    return create_async_engine(target, **options)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    from . import models  # noqa: F401 - ensure models registered

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
