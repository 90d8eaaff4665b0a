from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from supportdesk.api.v1.deps import get_store
from supportdesk.core.errors import NotFound, StoreError, Unauthenticated
from supportdesk.services.access import CustomerRole, EmployeeRole, ResolvedRole, resolve_role
from supportdesk.services.auth import get_current_user_from_ws
from supportdesk.services.tickets import TicketService
from supportdesk.services.ws import ws_manager
from supportdesk.store.changes import table_channel, ticket_messages_channel

logger = logging.getLogger(__name__)

changes_ws_router = APIRouter(tags=["ws-changes"])


async def _authorize(websocket: WebSocket) -> ResolvedRole | None:
    try:
        auth_user = await get_current_user_from_ws(websocket)
    except Unauthenticated:
        await websocket.close(code=4401)
        return None
    role = await resolve_role(get_store(), auth_user.user_id)
    if not isinstance(role, (EmployeeRole, CustomerRole)):
        await websocket.close(code=4403)
        return None
    return role


async def _relay(websocket: WebSocket, channel: str) -> None:
    await ws_manager.connect(channel, websocket)
    try:
        while True:
            msg = await websocket.receive_text()
            if msg.lower().strip() == "ping":
                await websocket.send_text('{"type":"pong"}')
    finally:
        await ws_manager.disconnect(channel, websocket)


@changes_ws_router.websocket("/changes/tickets")
async def ws_ticket_changes(websocket: WebSocket) -> None:
    await websocket.accept()
    try:
        role = await _authorize(websocket)
        if role is None:
            return
        if not isinstance(role, EmployeeRole):
            await websocket.close(code=4403)
            return
        await _relay(websocket, table_channel("tickets"))
    except WebSocketDisconnect:
        pass
    except StoreError:
        logger.exception("Ticket change stream failed")
        await websocket.close(code=1011)


@changes_ws_router.websocket("/changes/tickets/{ticket_id}/messages")
async def ws_message_changes(websocket: WebSocket, ticket_id: str) -> None:
    await websocket.accept()
    try:
        role = await _authorize(websocket)
        if role is None:
            return
        try:
            ticket = await TicketService(get_store(), actor_id=role.user_id).get_ticket(ticket_id)
        except NotFound:
            await websocket.close(code=4404)
            return
        if isinstance(role, CustomerRole) and ticket.get("created_by") != role.user_id:
            await websocket.close(code=4403)
            return
        await _relay(websocket, ticket_messages_channel(ticket_id))
    except WebSocketDisconnect:
        pass
    except StoreError:
        logger.exception("Message change stream failed for ticket id=%s", ticket_id)
        await websocket.close(code=1011)
