"""
WebSocket endpoint: one room per user for queue, appointment and chat events.

Clients may also send chat messages over the socket:
    {"event": "send-message", "data": {"receiver_id": "<uuid>", "content": "..."}}
The sender gets "message-sent" back (and "new-message" like the receiver),
or an "error" frame when the frame is malformed or the receiver is not a
previous match.
"""

import json
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.events import EventPublisher, QueueEvent, connection_manager
from app.core.exceptions import AppException
from app.core.security import user_id_from_token
from app.database import async_session_maker
from app.schemas.message import MessageCreate
from app.services import message_service, user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["events"])


async def _send_error(websocket: WebSocket, detail: str, code: str | None = None) -> None:
    await websocket.send_json({"event": QueueEvent.ERROR, "data": {"detail": detail, "code": code}})


async def handle_client_frame(
    db: AsyncSession,
    publisher: EventPublisher,
    websocket: WebSocket,
    user_id: UUID,
    raw: str,
) -> None:
    """Dispatch one inbound frame. Failures are reported on the socket, never raised."""
    try:
        frame: Any = json.loads(raw)
    except json.JSONDecodeError:
        await _send_error(websocket, "Frames must be JSON objects")
        return
    if not isinstance(frame, dict):
        await _send_error(websocket, "Frames must be JSON objects")
        return

    event = frame.get("event")
    if event != QueueEvent.SEND_MESSAGE:
        await _send_error(websocket, f"Unknown event: {event!r}")
        return

    data = frame.get("data") or {}
    try:
        receiver_id = UUID(str(data.get("receiver_id")))
        content = MessageCreate.model_validate({"content": data.get("content")}).content
    except (ValueError, ValidationError, AttributeError):
        await _send_error(websocket, "send-message needs a receiver_id and 1-2000 characters of content")
        return

    try:
        message = await message_service.send_message(db, publisher, user_id, receiver_id, content)
    except AppException as e:
        logger.info("Rejected socket message from %s to %s: %s", user_id, receiver_id, e.message)
        await _send_error(websocket, e.message, e.code.value)
        return

    await websocket.send_json(
        {"event": QueueEvent.MESSAGE_SENT, "data": jsonable_encoder(message)}
    )


@router.websocket("/ws")
async def events_socket(websocket: WebSocket, token: str = Query(...)) -> None:
    user_id = user_id_from_token(token)
    if user_id is not None:
        async with async_session_maker() as db:
            user = await user_service.get_user_by_id(db, user_id)
        if user is None:
            user_id = None
    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await connection_manager.connect(user_id, websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            async with async_session_maker() as db:
                await handle_client_frame(db, connection_manager, websocket, user_id, raw)
    except WebSocketDisconnect:
        pass
    finally:
        await connection_manager.disconnect(user_id, websocket)
