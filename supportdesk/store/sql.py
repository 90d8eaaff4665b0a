from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from sqlalchemy import Table, delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import supportdesk.models  # noqa: F401
from supportdesk.db.base import Base
from supportdesk.store.base import ChangeCallback, ChangeEvent, Filters, Row, Subscription
from supportdesk.store.changes import ChangeBus, change_channels

logger = logging.getLogger(__name__)

Publisher = Callable[[str, dict], Awaitable[None]]


class SqlStore:
    """Store backed by SQLAlchemy Core over the ORM tables.

    Each call runs in its own session and commits before the change is
    published, first to in-process subscribers and then to Redis.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        bus: ChangeBus | None = None,
        publisher: Publisher | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.bus = bus or ChangeBus()
        self._publisher = publisher

    @staticmethod
    def _table(name: str) -> Table:
        table = Base.metadata.tables.get(name)
        if table is None:
            raise ValueError(f"Unknown table {name}")
        return table

    @staticmethod
    def _conditions(table: Table, filters: Filters | None) -> list[Any]:
        out = []
        for key, value in (filters or {}).items():
            column = table.c[key]
            if isinstance(value, (list, tuple, set, frozenset)):
                out.append(column.in_(list(value)))
            elif value is None:
                out.append(column.is_(None))
            else:
                out.append(column == value)
        return out

    async def _emit(self, event: ChangeEvent) -> None:
        self.bus.publish(event)
        if self._publisher is None:
            return
        payload = event.to_payload()
        for channel in change_channels(event):
            try:
                await self._publisher(channel, payload)
            except Exception:
                logger.exception("Failed to publish %s change on %s", event.table, channel)

    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        t = self._table(table)
        stmt = select(t).where(*self._conditions(t, filters))
        if order_by:
            column = t.c[order_by]
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session_factory() as db:
            rows = (await db.execute(stmt)).mappings().all()
        return [dict(r) for r in rows]

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        t = self._table(table)
        async with self._session_factory() as db:
            result = await db.execute(insert(t).values(**dict(row)).returning(t))
            created = dict(result.mappings().one())
            await db.commit()
        await self._emit(ChangeEvent(table, "insert", new=created))
        return created

    async def update(self, table: str, filters: Filters, patch: Mapping[str, Any]) -> list[Row]:
        t = self._table(table)
        conditions = self._conditions(t, filters)
        async with self._session_factory() as db:
            before = {
                str(r["id"]): dict(r)
                for r in (await db.execute(select(t).where(*conditions).with_for_update())).mappings().all()
            }
            if not before:
                await db.rollback()
                return []
            result = await db.execute(
                update(t).where(t.c.id.in_(list(before))).values(**dict(patch)).returning(t)
            )
            after = [dict(r) for r in result.mappings().all()]
            await db.commit()
        for row in after:
            await self._emit(ChangeEvent(table, "update", new=row, old=before.get(str(row["id"]))))
        return after

    async def delete(self, table: str, filters: Filters) -> int:
        t = self._table(table)
        async with self._session_factory() as db:
            result = await db.execute(delete(t).where(*self._conditions(t, filters)).returning(t))
            removed = [dict(r) for r in result.mappings().all()]
            await db.commit()
        for row in removed:
            await self._emit(ChangeEvent(table, "delete", old=row))
        return len(removed)

    def subscribe_changes(
        self,
        table: str,
        callback: ChangeCallback,
        filters: Filters | None = None,
    ) -> Subscription:
        return self.bus.subscribe(table, callback, filters)

    async def rpc(self, name: str, params: Mapping[str, Any]) -> Any:
        if name != "increment_article_view_count":
            raise ValueError(f"Unknown rpc {name}")
        t = self._table("articles")
        article_id = str(params.get("article_id") or "")
        async with self._session_factory() as db:
            old = (await db.execute(select(t).where(t.c.id == article_id))).mappings().one_or_none()
            result = await db.execute(
                update(t).where(t.c.id == article_id).values(view_count=t.c.view_count + 1).returning(t)
            )
            new = result.mappings().one_or_none()
            await db.commit()
        if new is not None:
            await self._emit(ChangeEvent("articles", "update", new=dict(new), old=dict(old) if old else None))
        return None
