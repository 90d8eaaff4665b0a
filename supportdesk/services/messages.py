from __future__ import annotations

import logging

from supportdesk.core.config import settings
from supportdesk.core.errors import InvalidInput, StoreError, SupportDeskError, Unauthenticated
from supportdesk.models.common import new_id, utcnow
from supportdesk.realtime.collection import LiveCollection
from supportdesk.services.access import EmployeeRole, resolve_role
from supportdesk.services.tickets import TicketService
from supportdesk.store.base import Row, Store

logger = logging.getLogger(__name__)


class MessageService:
    def __init__(
        self,
        store: Store,
        *,
        actor_id: str | None,
        tickets: TicketService,
        thread: LiveCollection | None = None,
    ) -> None:
        self.store = store
        self.actor_id = actor_id
        self.tickets = tickets
        self.thread = thread
        self.error: str | None = None

    async def fetch_messages(self, ticket_id: str) -> list[Row]:
        try:
            rows = await self.store.select("messages", {"ticket_id": ticket_id}, order_by="created_at")
        except Exception as exc:
            self.error = str(exc)
            logger.exception("Message fetch failed for ticket id=%s", ticket_id)
            raise StoreError("Failed to fetch messages") from exc
        return rows

    async def _sender_type(self) -> str:
        role = await resolve_role(self.store, self.actor_id)
        return "employee" if isinstance(role, EmployeeRole) else "customer"

    async def send(self, ticket_id: str | None, text: str | None, is_system_message: bool = False) -> Row | None:
        clean = (text or "").strip()
        if not ticket_id or not clean:
            return None
        if len(clean) > settings.message_max_length:
            raise InvalidInput("Message too long")
        if not self.actor_id:
            raise Unauthenticated("Sign in to send messages")

        row: Row = {
            "id": new_id(),
            "ticket_id": ticket_id,
            "message": clean,
            "created_by": self.actor_id,
            "sender_type": await self._sender_type(),
            "is_system_message": bool(is_system_message),
            "created_at": utcnow(),
        }
        if self.thread is not None:
            self.thread.add_local({**row, "sending": True})
        try:
            saved = await self.store.insert("messages", row)
        except Exception as exc:
            if self.thread is not None:
                self.thread.revert(row["id"], None)
            self.error = str(exc)
            logger.exception("Sending message failed for ticket id=%s", ticket_id)
            raise StoreError("Failed to send message") from exc
        if self.thread is not None:
            self.thread.confirm({**saved, "sending": False})
        self.error = None

        try:
            await self.tickets.touch_timestamp(ticket_id)
        except SupportDeskError as exc:
            # The message is stored; a retry would duplicate it.
            self.error = str(exc)
            logger.warning("Message %s saved but ticket id=%s was not touched", saved["id"], ticket_id)
        return saved

    async def send_system_message(self, ticket_id: str, text: str) -> Row | None:
        return await self.send(ticket_id, text, is_system_message=True)
