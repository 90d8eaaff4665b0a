from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Literal

from supportdesk.store.base import ChangeEvent, Row

logger = logging.getLogger(__name__)

MergeOutcome = Literal["appended", "merged", "suppressed", "removed", "ignored"]


class LiveCollection:
    """Client-held copy of a table's rows, reconciled against change events.

    Rows are keyed by id. Local writes are applied immediately and the id is
    remembered as pending until the store's echo (or the write's own result)
    arrives; an echo for a pending id is folded into the existing row rather
    than appended again. Incoming rows are merged field by field, so keys the
    store never sends (``sending`` and friends) survive reconciliation.
    """

    def __init__(
        self,
        name: str,
        *,
        sort_key: Callable[[Row], Any],
        reverse: bool = False,
        accept: Callable[[Row], bool] | None = None,
    ) -> None:
        self.name = name
        self._rows: dict[str, Row] = {}
        self._pending: set[str] = set()
        self._sort_key = sort_key
        self._reverse = reverse
        self._accept = accept

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, row_id: object) -> bool:
        return row_id in self._rows

    @property
    def items(self) -> list[Row]:
        # sorted() is stable, so equal keys keep arrival order.
        ordered = sorted(self._rows.values(), key=self._sort_key, reverse=self._reverse)
        return [dict(x) for x in ordered]

    @property
    def pending_ids(self) -> frozenset[str]:
        return frozenset(self._pending)

    def get(self, row_id: str) -> Row | None:
        row = self._rows.get(row_id)
        return dict(row) if row is not None else None

    def clear(self) -> None:
        self._rows.clear()
        self._pending.clear()

    def replace_all(self, rows: Iterable[Mapping[str, Any]]) -> None:
        fresh: dict[str, Row] = {}
        for row in rows:
            row_id = str(row["id"])
            fresh[row_id] = {**self._rows.get(row_id, {}), **row}
        # Local writes still in flight are not in the fetched snapshot yet.
        for row_id in self._pending:
            if row_id in self._rows and row_id not in fresh:
                fresh[row_id] = self._rows[row_id]
        self._rows = fresh

    # -- local (optimistic) writes -------------------------------------

    def add_local(self, row: Mapping[str, Any]) -> None:
        row_id = str(row["id"])
        self._pending.add(row_id)
        self._rows[row_id] = {**self._rows.get(row_id, {}), **row}

    def patch_local(self, row_id: str, patch: Mapping[str, Any]) -> Row | None:
        """Apply ``patch`` and return the previous row for :meth:`revert`."""
        current = self._rows.get(row_id)
        if current is None:
            return None
        snapshot = dict(current)
        current.update(patch)
        self._pending.add(row_id)
        return snapshot

    def remove_local(self, row_id: str) -> Row | None:
        self._pending.discard(row_id)
        return self._rows.pop(row_id, None)

    def revert(self, row_id: str, snapshot: Row | None) -> None:
        self._pending.discard(row_id)
        if snapshot is None:
            self._rows.pop(row_id, None)
        else:
            self._rows[row_id] = dict(snapshot)

    def confirm(self, row: Mapping[str, Any]) -> None:
        """Fold in the authoritative row returned by our own write."""
        row_id = str(row["id"])
        self._pending.discard(row_id)
        self._rows[row_id] = {**self._rows.get(row_id, {}), **row}

    # -- remote events ---------------------------------------------------

    def apply(self, event: ChangeEvent) -> MergeOutcome:
        row_id = event.row_id
        if row_id is None:
            return "ignored"

        if event.event_type == "delete":
            self._pending.discard(row_id)
            return "removed" if self._rows.pop(row_id, None) is not None else "ignored"

        incoming = event.new or {}
        if event.event_type == "insert":
            if row_id in self._pending:
                self._pending.discard(row_id)
                self._rows[row_id] = {**self._rows.get(row_id, {}), **incoming}
                return "suppressed"
            if row_id in self._rows:
                self._rows[row_id].update(incoming)
                return "merged"
            if self._accept is not None and not self._accept(incoming):
                return "ignored"
            self._rows[row_id] = dict(incoming)
            return "appended"

        current = self._rows.get(row_id)
        if current is None:
            return "ignored"
        self._pending.discard(row_id)
        current.update(incoming)
        return "merged"

    def __call__(self, event: ChangeEvent) -> None:
        outcome = self.apply(event)
        logger.debug("%s %s id=%s -> %s", self.name, event.event_type, event.row_id, outcome)


def _by(column: str) -> Callable[[Row], tuple[bool, Any]]:
    def key(row: Row) -> tuple[bool, Any]:
        value = row.get(column)
        return (value is None, value)

    return key


def tickets_collection(accept: Callable[[Row], bool] | None = None) -> LiveCollection:
    return LiveCollection("tickets", sort_key=_by("updated_at"), reverse=True, accept=accept)


def messages_collection() -> LiveCollection:
    return LiveCollection("messages", sort_key=_by("created_at"))
