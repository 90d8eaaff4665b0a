from __future__ import annotations

import itertools
import logging
from collections import defaultdict

from supportdesk.core.config import settings
from supportdesk.store.base import ChangeCallback, ChangeEvent, Filters, Subscription

logger = logging.getLogger(__name__)


def table_channel(table: str) -> str:
    return f"{settings.change_channel_prefix}:{table}"


def ticket_messages_channel(ticket_id: str) -> str:
    return f"{table_channel('messages')}:{ticket_id}"


def change_channels(event: ChangeEvent) -> list[str]:
    """Redis channels a change is fanned out on."""
    channels = [table_channel(event.table)]
    if event.table == "messages":
        row = event.row or {}
        ticket_id = row.get("ticket_id")
        if ticket_id:
            channels.append(ticket_messages_channel(str(ticket_id)))
    return channels


class ChangeBus:
    """In-process dispatch of row changes to table subscribers."""

    def __init__(self) -> None:
        self._subscribers: dict[str, dict[int, tuple[Filters | None, ChangeCallback]]] = defaultdict(dict)
        self._keys = itertools.count(1)

    def subscribe(self, table: str, callback: ChangeCallback, filters: Filters | None = None) -> Subscription:
        key = next(self._keys)
        self._subscribers[table][key] = (dict(filters) if filters else None, callback)
        logger.debug("Subscribed to %s changes (key=%s, filters=%s)", table, key, filters)

        def release() -> None:
            listeners = self._subscribers.get(table)
            if listeners is not None:
                listeners.pop(key, None)
                if not listeners:
                    self._subscribers.pop(table, None)
            logger.debug("Released %s subscription key=%s", table, key)

        return Subscription(release, label=f"{table}#{key}")

    def publish(self, event: ChangeEvent) -> int:
        # Snapshot: callbacks may unsubscribe while we iterate.
        listeners = list(self._subscribers.get(event.table, {}).values())
        delivered = 0
        for filters, callback in listeners:
            if not event.matches(filters):
                continue
            try:
                callback(event)
            except Exception:
                logger.exception("Change listener failed for %s %s id=%s", event.table, event.event_type, event.row_id)
            delivered += 1
        return delivered

    def subscriber_count(self, table: str | None = None) -> int:
        if table is not None:
            return len(self._subscribers.get(table, {}))
        return sum(len(x) for x in self._subscribers.values())
