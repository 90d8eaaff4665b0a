from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict

from fastapi import WebSocket
from redis.asyncio.client import PubSub

from supportdesk.db.redis import redis_client

logger = logging.getLogger(__name__)


class RedisFanoutManager:
    """Relays store change events from Redis pub/sub to websocket viewers.

    A channel holds one Redis subscription per process, shared by every local
    viewer of it and released with the last one.
    """

    def __init__(self) -> None:
        self.local_connections: dict[str, set[WebSocket]] = defaultdict(set)
        self.listeners: dict[str, asyncio.Task] = {}
        self.lock = asyncio.Lock()

    async def connect(self, channel: str, ws: WebSocket) -> None:
        async with self.lock:
            self.local_connections[channel].add(ws)
            if channel not in self.listeners:
                self.listeners[channel] = asyncio.create_task(self.subscribe_loop(channel))

    async def disconnect(self, channel: str, ws: WebSocket) -> None:
        async with self.lock:
            viewers = self.local_connections.get(channel)
            if viewers is not None:
                viewers.discard(ws)
                if viewers:
                    return
                self.local_connections.pop(channel, None)
            listener = self.listeners.pop(channel, None)
        if listener is not None:
            listener.cancel()

    def viewer_count(self, channel: str) -> int:
        return len(self.local_connections.get(channel, ()))

    async def broadcast(self, channel: str, text: str) -> int:
        delivered = 0
        for ws in list(self.local_connections.get(channel, ())):
            try:
                await ws.send_text(text)
            except Exception:
                logger.warning("Dropping viewer on %s after failed send", channel, exc_info=True)
                self.local_connections[channel].discard(ws)
                continue
            delivered += 1
        return delivered

    async def publish(self, channel: str, message: dict) -> None:
        await redis_client.publish(channel, json.dumps(message, default=str))

    async def subscribe_loop(self, channel: str) -> None:
        pubsub: PubSub = redis_client.pubsub()
        await pubsub.subscribe(channel)
        try:
            while True:
                msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if msg and msg.get("data"):
                    await self.broadcast(channel, str(msg["data"]))
                await asyncio.sleep(0.02)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.close()
            logger.debug("Released redis subscription on %s", channel)


ws_manager = RedisFanoutManager()
