from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from supportdesk.models.common import new_id, utcnow
from supportdesk.store.base import ChangeCallback, ChangeEvent, Filters, Row, Subscription, row_matches
from supportdesk.store.changes import ChangeBus

logger = logging.getLogger(__name__)

RpcHandler = Callable[["MemoryStore", Mapping[str, Any]], Awaitable[Any]]


class StoreUnavailable(RuntimeError):
    pass


def _sort_key(column: str) -> Callable[[Row], tuple[bool, Any]]:
    def key(row: Row) -> tuple[bool, Any]:
        value = row.get(column)
        return (value is None, value)

    return key


async def _increment_article_view_count(store: MemoryStore, params: Mapping[str, Any]) -> None:
    article_id = params.get("article_id")
    current = store._tables["articles"].get(str(article_id))
    if current is None:
        return None
    old = dict(current)
    current["view_count"] = int(current.get("view_count") or 0) + 1
    store.bus.publish(ChangeEvent("articles", "update", new=dict(current), old=old))
    return None


class MemoryStore:
    """Process-local store with the same contract as the SQL store.

    Rows are plain dicts keyed by ``id``. Every write publishes a change
    event on the bus before the write returns, so a writer's own echo is
    observed while its call is still in flight.
    """

    def __init__(self, bus: ChangeBus | None = None) -> None:
        self.bus = bus or ChangeBus()
        self._tables: dict[str, dict[str, Row]] = defaultdict(dict)
        self._rpcs: dict[str, RpcHandler] = {
            "increment_article_view_count": _increment_article_view_count,
        }
        self._failures: dict[tuple[str, str], list[Exception]] = defaultdict(list)
        self.calls: list[tuple[str, str]] = []

    def seed(self, table: str, rows: Iterable[Mapping[str, Any]]) -> None:
        for row in rows:
            data = dict(row)
            data.setdefault("id", new_id())
            self._tables[table][str(data["id"])] = data

    def rows(self, table: str) -> list[Row]:
        return [dict(x) for x in self._tables[table].values()]

    def fail_next(self, operation: str, table: str, exc: Exception | None = None) -> None:
        """Make the next ``operation`` on ``table`` raise instead of writing."""
        self._failures[(operation, table)].append(exc or StoreUnavailable(f"{operation} on {table} failed"))

    def register_rpc(self, name: str, handler: RpcHandler) -> None:
        self._rpcs[name] = handler

    def _check(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        pending = self._failures.get((operation, table))
        if pending:
            raise pending.pop(0)

    def _matching(self, table: str, filters: Filters | None) -> list[Row]:
        return [row for row in self._tables[table].values() if row_matches(row, filters)]

    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        self._check("select", table)
        rows = [dict(x) for x in self._matching(table, filters)]
        if order_by:
            rows.sort(key=_sort_key(order_by), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        self._check("insert", table)
        data = dict(row)
        data.setdefault("id", new_id())
        data.setdefault("created_at", utcnow())
        key = str(data["id"])
        if key in self._tables[table]:
            raise StoreUnavailable(f"duplicate key {key} in {table}")
        self._tables[table][key] = data
        self.bus.publish(ChangeEvent(table, "insert", new=dict(data)))
        return dict(data)

    async def update(self, table: str, filters: Filters, patch: Mapping[str, Any]) -> list[Row]:
        self._check("update", table)
        out: list[Row] = []
        for current in self._matching(table, filters):
            old = dict(current)
            current.update(patch)
            out.append(dict(current))
            self.bus.publish(ChangeEvent(table, "update", new=dict(current), old=old))
        return out

    async def delete(self, table: str, filters: Filters) -> int:
        self._check("delete", table)
        doomed = self._matching(table, filters)
        for row in doomed:
            self._tables[table].pop(str(row["id"]), None)
            self.bus.publish(ChangeEvent(table, "delete", old=dict(row)))
        return len(doomed)

    def subscribe_changes(
        self,
        table: str,
        callback: ChangeCallback,
        filters: Filters | None = None,
    ) -> Subscription:
        return self.bus.subscribe(table, callback, filters)

    async def rpc(self, name: str, params: Mapping[str, Any]) -> Any:
        self._check("rpc", name)
        handler = self._rpcs.get(name)
        if handler is None:
            raise StoreUnavailable(f"unknown rpc {name}")
        return await handler(self, params)
