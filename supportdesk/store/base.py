from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Protocol

Row = dict[str, Any]
Filters = Mapping[str, Any]
ChangeType = Literal["insert", "update", "delete"]


def row_matches(row: Mapping[str, Any] | None, filters: Filters | None) -> bool:
    """Equality filters; a list/tuple/set value means "column in values"."""
    if not filters:
        return True
    if row is None:
        return False
    for key, expected in filters.items():
        value = row.get(key)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


@dataclass(slots=True, frozen=True)
class ChangeEvent:
    table: str
    event_type: ChangeType
    new: Row | None = None
    old: Row | None = None

    @property
    def row(self) -> Row | None:
        return self.new if self.new is not None else self.old

    @property
    def row_id(self) -> str | None:
        row = self.row
        if row is None:
            return None
        value = row.get("id")
        return str(value) if value is not None else None

    def matches(self, filters: Filters | None) -> bool:
        return row_matches(self.new, filters) or row_matches(self.old, filters)

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": f"{self.table}.{self.event_type}",
            "table": self.table,
            "event_type": self.event_type,
            "new": {k: _jsonable(v) for k, v in self.new.items()} if self.new is not None else None,
            "old": {k: _jsonable(v) for k, v in self.old.items()} if self.old is not None else None,
        }


ChangeCallback = Callable[[ChangeEvent], None]


class Subscription:
    """Cancellation handle for a change stream; released at most once."""

    def __init__(self, release: Callable[[], None], *, label: str = "") -> None:
        self._release: Callable[[], None] | None = release
        self.label = label

    @property
    def active(self) -> bool:
        return self._release is not None

    def unsubscribe(self) -> bool:
        release, self._release = self._release, None
        if release is None:
            return False
        release()
        return True

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()

    def __repr__(self) -> str:
        state = "active" if self.active else "released"
        return f"<Subscription {self.label or '?'} {state}>"


class Store(Protocol):
    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]: ...

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row: ...

    async def update(self, table: str, filters: Filters, patch: Mapping[str, Any]) -> list[Row]: ...

    async def delete(self, table: str, filters: Filters) -> int: ...

    def subscribe_changes(
        self,
        table: str,
        callback: ChangeCallback,
        filters: Filters | None = None,
    ) -> Subscription: ...

    async def rpc(self, name: str, params: Mapping[str, Any]) -> Any: ...
