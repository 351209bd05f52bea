from __future__ import annotations

import asyncio
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from .contracts import DishRecord, Restaurant
from .db.core import build_engine, build_sessionmaker, init_db
from .db.models import DishRecordRow, RestaurantRow
from .errors import StorageDegraded
from .logging_config import get_logger

logger = get_logger(__name__)

# Driver-level failures (refused connections, out-of-range integers, connect timeouts) are
# raised by asyncpg/aiosqlite without a SQLAlchemy wrapper.
STORE_ERRORS = (SQLAlchemyError, OSError, OverflowError, asyncio.TimeoutError)


def _row_to_record(row: DishRecordRow) -> DishRecord:
    return DishRecord(
        id=row.id,
        name=row.name,
        display_language=row.display_language,
        menu_language=row.menu_language or "en",
        explanation=row.explanation,
        tags=row.tags,
        allergens=row.allergens,
        cuisine=row.cuisine,
        restaurant_id=row.restaurant_id,
        restaurant_name=row.restaurant_name,
        created_at=row.created_at,
    )


class CorpusStore:
    """
    SQL-backed corpus of explained dishes.

    Rows are append-only from the service's point of view: the resolver inserts, nothing here
    updates or deletes a dish. Every failure surfaces as ``StorageDegraded`` so callers can
    decide whether to fail open.
    """

    def __init__(
        self,
        engine: AsyncEngine | None = None,
        sessionmaker: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self.engine = engine or build_engine()
        self._sessionmaker = sessionmaker or build_sessionmaker(self.engine)
        self._ready = False

    @classmethod
    def from_url(cls, url: str) -> CorpusStore:
        return cls(build_engine(url))

    async def _session(self) -> AsyncSession:
        if not self._ready:
            await init_db(self.engine)
            self._ready = True
        return self._sessionmaker()

    # -------- dishes --------
    async def query_by_language(self, language: str) -> list[DishRecord]:
        try:
            async with await self._session() as session:
                stmt = (
                    select(DishRecordRow)
                    .where(DishRecordRow.display_language == language)
                    .order_by(DishRecordRow.id)
                )
                rows = (await session.execute(stmt)).scalars().all()
        except STORE_ERRORS as exc:
            raise StorageDegraded("query_by_language", str(exc)) from exc
        return [_row_to_record(row) for row in rows]

    async def insert(self, record: DishRecord) -> DishRecord:
        row = DishRecordRow(
            name=record.name,
            display_language=record.display_language,
            menu_language=record.menu_language,
            explanation=record.explanation,
            tags=list(record.tags),
            allergens=list(record.allergens),
            cuisine=record.cuisine,
            restaurant_id=record.restaurant_id,
            restaurant_name=record.restaurant_name,
        )
        try:
            async with await self._session() as session:
                session.add(row)
                await session.commit()
                await session.refresh(row)
        except STORE_ERRORS as exc:
            raise StorageDegraded("insert", str(exc)) from exc
        return _row_to_record(row)

    async def count_dishes(self, language: str | None = None) -> int:
        try:
            async with await self._session() as session:
                stmt = select(func.count(DishRecordRow.id))
                if language:
                    stmt = stmt.where(DishRecordRow.display_language == language)
                return int((await session.execute(stmt)).scalar_one())
        except STORE_ERRORS as exc:
            raise StorageDegraded("count_dishes", str(exc)) from exc

    # -------- restaurants --------
    async def increment_restaurant_explanation_count(self, restaurant_id: int) -> None:
        try:
            async with await self._session() as session:
                stmt = (
                    update(RestaurantRow)
                    .where(RestaurantRow.id == restaurant_id)
                    .values(total_explanations=RestaurantRow.total_explanations + 1)
                )
                result = await session.execute(stmt)
                await session.commit()
        except STORE_ERRORS as exc:
            raise StorageDegraded("increment_restaurant_explanation_count", str(exc)) from exc
        if not result.rowcount:
            logger.info("restaurant_counter_skipped", restaurant_id=restaurant_id)

    async def get_restaurant(self, restaurant_id: int) -> Restaurant | None:
        try:
            async with await self._session() as session:
                row = await session.get(RestaurantRow, restaurant_id)
        except STORE_ERRORS as exc:
            raise StorageDegraded("get_restaurant", str(exc)) from exc
        return Restaurant.model_validate(row) if row else None

    async def ensure_restaurant(
        self,
        name: str,
        *,
        cuisine: str | None = None,
        location: dict[str, Any] | None = None,
    ) -> Restaurant:
        try:
            async with await self._session() as session:
                stmt = select(RestaurantRow).where(RestaurantRow.name == name).limit(1)
                row = (await session.execute(stmt)).scalars().first()
                if row is None:
                    row = RestaurantRow(name=name, cuisine=cuisine, location=location)
                    session.add(row)
                    await session.commit()
                    await session.refresh(row)
        except STORE_ERRORS as exc:
            raise StorageDegraded("ensure_restaurant", str(exc)) from exc
        return Restaurant.model_validate(row)

    async def ping(self) -> dict[str, Any]:
        return {"dish_count": await self.count_dishes()}

    async def close(self) -> None:
        await self.engine.dispose()


__all__ = ["CorpusStore"]
