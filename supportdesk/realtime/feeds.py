from __future__ import annotations

import logging

from supportdesk.core.errors import StoreError
from supportdesk.realtime.collection import LiveCollection, messages_collection, tickets_collection
from supportdesk.store.base import Store, Subscription

logger = logging.getLogger(__name__)


class TicketFeed:
    """Ticket list kept current from the ``tickets`` change stream."""

    def __init__(self, store: Store, board: LiveCollection | None = None) -> None:
        self.store = store
        self.board = board or tickets_collection()
        self._subscription: Subscription | None = None
        self.error: str | None = None

    @property
    def is_open(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def open(self) -> LiveCollection:
        if self.is_open:
            return self.board
        # Subscribe before the initial fetch so nothing written in between is lost.
        subscription = self.store.subscribe_changes("tickets", self.board)
        self._subscription = subscription
        try:
            rows = await self.store.select("tickets", order_by="updated_at", descending=True)
        except Exception as exc:
            self.error = str(exc)
            logger.exception("Initial ticket fetch failed")
            if self._subscription is subscription:
                self.close()
            raise StoreError("Failed to load tickets") from exc
        if self._subscription is not subscription:
            # Closed or reopened while the fetch was in flight.
            logger.debug("Dropping stale ticket snapshot")
            return self.board
        self.board.replace_all(rows)
        self.error = None
        return self.board

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def __aenter__(self) -> TicketFeed:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()


class MessageFeed:
    """Messages of the active ticket only.

    Switching the active ticket releases the previous ticket's subscription
    before opening the next one, so events never leak across tickets.
    """

    def __init__(self, store: Store, thread: LiveCollection | None = None) -> None:
        self.store = store
        self.thread = thread or messages_collection()
        self.ticket_id: str | None = None
        self._subscription: Subscription | None = None
        self.error: str | None = None

    async def focus(self, ticket_id: str | None) -> LiveCollection:
        if ticket_id == self.ticket_id and (ticket_id is None or self._subscription is not None):
            return self.thread

        self.close()
        self.ticket_id = ticket_id
        if not ticket_id:
            return self.thread

        subscription = self.store.subscribe_changes("messages", self.thread, {"ticket_id": ticket_id})
        self._subscription = subscription
        try:
            rows = await self.store.select("messages", {"ticket_id": ticket_id}, order_by="created_at")
        except Exception as exc:
            self.error = str(exc)
            logger.exception("Message fetch failed for ticket id=%s", ticket_id)
            if self._subscription is subscription:
                self.close()
            raise StoreError("Failed to load messages") from exc
        if self._subscription is not subscription:
            # Another ticket was focused while this fetch was in flight.
            logger.debug("Dropping stale messages of ticket id=%s", ticket_id)
            return self.thread
        self.thread.replace_all(rows)
        self.error = None
        return self.thread

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self.thread.clear()
        self.ticket_id = None

    async def __aenter__(self) -> MessageFeed:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()
