from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from supportdesk.core.errors import InvalidInput, NotFound, StoreError
from supportdesk.models.common import new_id, next_timestamp, utcnow
from supportdesk.models.ticket import TICKET_CATEGORIES, TICKET_PRIORITIES, TICKET_STATUSES
from supportdesk.realtime.collection import LiveCollection
from supportdesk.store.base import Row, Store

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = {"status", "priority", "category", "assigned_to", "name", "resolved"}


def normalize_status(raw: str | None) -> str:
    value = str(raw or "").strip().lower()
    if value not in TICKET_STATUSES:
        raise InvalidInput(f"Invalid ticket status: {raw!r}")
    return value


def normalize_priority(raw: str | None) -> str:
    value = str(raw or "").strip().lower()
    if value not in TICKET_PRIORITIES:
        raise InvalidInput(f"Invalid ticket priority: {raw!r}")
    return value


def normalize_category(raw: str | None) -> str:
    value = str(raw or "").strip().lower()
    if value not in TICKET_CATEGORIES:
        raise InvalidInput(f"Invalid ticket category: {raw!r}")
    return value


class TicketService:
    """Reads and writes tickets; mirrors every write into ``board`` first.

    ``board`` is the caller's reconciled ticket list (see ``TicketFeed``).
    When it is given, a mutation is visible there before the store answers
    and is rolled back if the store call fails.
    """

    def __init__(self, store: Store, *, actor_id: str | None, board: LiveCollection | None = None) -> None:
        self.store = store
        self.actor_id = actor_id
        self.board = board
        self.error: str | None = None

    def _fail(self, message: str, exc: Exception) -> StoreError:
        self.error = str(exc) or message
        return StoreError(message)

    async def fetch_tickets(self, *, created_by: str | None = None) -> list[Row]:
        filters = {"created_by": created_by} if created_by else None
        try:
            rows = await self.store.select("tickets", filters, order_by="updated_at", descending=True)
        except Exception as exc:
            logger.exception("Ticket fetch failed")
            raise self._fail("Failed to fetch tickets", exc) from exc
        if self.board is not None and created_by is None:
            self.board.replace_all(rows)
        self.error = None
        return rows

    async def get_ticket(self, ticket_id: str) -> Row:
        try:
            rows = await self.store.select("tickets", {"id": ticket_id}, limit=1)
        except Exception as exc:
            logger.exception("Ticket lookup failed for id=%s", ticket_id)
            raise self._fail("Failed to load ticket", exc) from exc
        if not rows:
            raise NotFound("Ticket not found")
        return rows[0]

    def unassigned_tickets(self) -> list[Row]:
        if self.board is None:
            return []
        rows = [x for x in self.board.items if not x.get("assigned_to")]
        rows.sort(key=lambda x: x["created_at"])
        return rows

    async def create_ticket(self, category: str, creator_id: str | None = None) -> Row:
        creator = creator_id or self.actor_id
        if not creator:
            raise InvalidInput("A ticket needs a creator")
        if not category:
            raise InvalidInput("Choose a category first")
        now = utcnow()
        row: Row = {
            "id": new_id(),
            "status": "fresh",
            "priority": "medium",
            "category": normalize_category(category),
            "created_by": creator,
            "assigned_to": None,
            "name": None,
            "resolved": False,
            "created_at": now,
            "updated_at": now,
        }
        if self.board is not None:
            self.board.add_local(row)
        try:
            created = await self.store.insert("tickets", row)
        except Exception as exc:
            if self.board is not None:
                self.board.revert(row["id"], None)
            logger.exception("Ticket creation failed for creator=%s", creator)
            raise self._fail("Failed to create ticket", exc) from exc
        if self.board is not None:
            self.board.confirm(created)
        self.error = None
        logger.info("Created ticket id=%s category=%s", created["id"], created["category"])
        return created

    async def apply_changes(self, ticket_id: str, changes: Mapping[str, Any]) -> Row:
        """Write ``changes`` plus a fresh ``updated_at`` as one row update."""
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise InvalidInput(f"Not editable: {', '.join(sorted(unknown))}")

        previous = self.board.get(ticket_id) if self.board is not None else None
        if previous is None:
            previous = await self.get_ticket(ticket_id)
        if "status" in changes or "assigned_to" in changes:
            merged = {**previous, **changes}
            if merged.get("status") == "fresh" and merged.get("assigned_to"):
                raise InvalidInput("An assigned ticket cannot go back to fresh")
        patch = dict(changes)
        patch["updated_at"] = next_timestamp(previous.get("updated_at"))

        snapshot = self.board.patch_local(ticket_id, patch) if self.board is not None else None
        try:
            rows = await self.store.update("tickets", {"id": ticket_id}, patch)
        except Exception as exc:
            if self.board is not None and snapshot is not None:
                self.board.revert(ticket_id, snapshot)
            logger.exception("Ticket update failed for id=%s fields=%s", ticket_id, sorted(patch))
            raise self._fail("Failed to update ticket", exc) from exc
        if not rows:
            if self.board is not None and snapshot is not None:
                self.board.revert(ticket_id, snapshot)
            raise NotFound("Ticket not found")
        if self.board is not None:
            self.board.confirm(rows[0])
        self.error = None
        return rows[0]

    async def update_status(self, ticket_id: str, status: str) -> Row:
        value = normalize_status(status)
        return await self.apply_changes(ticket_id, {"status": value, "resolved": value == "closed"})

    async def update_priority(self, ticket_id: str, priority: str) -> Row:
        return await self.apply_changes(ticket_id, {"priority": normalize_priority(priority)})

    async def update_category(self, ticket_id: str, category: str) -> Row:
        return await self.apply_changes(ticket_id, {"category": normalize_category(category)})

    async def update_title(self, ticket_id: str, name: str | None) -> Row:
        clean = (name or "").strip()[:255] or None
        return await self.apply_changes(ticket_id, {"name": clean})

    async def assign(self, ticket_id: str, employee_id: str | None) -> Row:
        changes: dict[str, Any] = {"assigned_to": employee_id or None}
        if employee_id:
            current = self.board.get(ticket_id) if self.board is not None else None
            if current is None:
                current = await self.get_ticket(ticket_id)
            if current.get("status") == "fresh":
                changes["status"] = "in_progress"
        return await self.apply_changes(ticket_id, changes)

    async def touch_timestamp(self, ticket_id: str) -> Row:
        return await self.apply_changes(ticket_id, {})

    async def delete_ticket(self, ticket_id: str) -> None:
        # Messages first: if they cannot be removed the ticket must stay.
        try:
            await self.store.delete("messages", {"ticket_id": ticket_id})
        except Exception as exc:
            logger.exception("Message cleanup failed, keeping ticket id=%s", ticket_id)
            raise self._fail("Failed to delete ticket messages", exc) from exc

        snapshot = self.board.remove_local(ticket_id) if self.board is not None else None
        try:
            await self.store.delete("tickets", {"id": ticket_id})
        except Exception as exc:
            if self.board is not None and snapshot is not None:
                self.board.revert(ticket_id, snapshot)
            logger.exception("Ticket delete failed for id=%s", ticket_id)
            raise self._fail("Failed to delete ticket", exc) from exc
        self.error = None
        logger.info("Deleted ticket id=%s", ticket_id)
