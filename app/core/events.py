"""
Real-time event fan-out.

Services depend only on the EventPublisher interface. The application wires
in a ConnectionManager that keeps one "room" of WebSocket connections per
user; tests swap in a recorder. Delivery is best effort: the database stays
the source of truth and clients can always re-read state over HTTP.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Iterable, Protocol
from uuid import UUID

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class QueueEvent:
    """Event names pushed to participants."""

    MATCHED = "matched"
    QUEUE_UPDATED = "queue-updated"
    DATE_PROPOSED = "date-proposed"
    APPOINTMENT_BOOKED = "appointment-booked"
    APPOINTMENT_SKIPPED = "appointment-skipped"
    APPOINTMENT_CONFIRMED = "appointment-confirmed"
    NOTIFICATION = "notification"
    NEW_MESSAGE = "new-message"
    MESSAGE_SENT = "message-sent"
    CALL_CONFIRMED = "call-confirmed"
    ERROR = "error"

    # Client -> server
    SEND_MESSAGE = "send-message"


class EventPublisher(Protocol):
    async def publish(
        self,
        participant_ids: Iterable[UUID],
        event: str,
        payload: dict[str, Any],
    ) -> None: ...


class ConnectionManager:
    """Tracks live WebSocket connections, grouped by user id."""

    def __init__(self) -> None:
        self._rooms: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, user_id: UUID, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._rooms[str(user_id)].add(websocket)
        logger.info("User %s connected (%d sockets)", user_id, len(self._rooms[str(user_id)]))

    async def disconnect(self, user_id: UUID, websocket: WebSocket) -> None:
        async with self._lock:
            room = self._rooms.get(str(user_id))
            if room is None:
                return
            room.discard(websocket)
            if not room:
                del self._rooms[str(user_id)]
        logger.info("User %s disconnected", user_id)

    async def publish(
        self,
        participant_ids: Iterable[UUID],
        event: str,
        payload: dict[str, Any],
    ) -> None:
        message = {"event": event, "data": jsonable_encoder(payload)}
        for participant_id in set(str(pid) for pid in participant_ids):
            async with self._lock:
                sockets = list(self._rooms.get(participant_id, ()))
            for websocket in sockets:
                try:
                    await websocket.send_json(message)
                except Exception as e:
                    logger.warning(
                        "Failed to deliver %s to user %s: %s", event, participant_id, e
                    )
                    await self.disconnect(UUID(participant_id), websocket)


connection_manager = ConnectionManager()


def get_event_publisher() -> EventPublisher:
    return connection_manager


async def publish_safely(
    publisher: EventPublisher,
    participant_ids: Iterable[UUID],
    event: str,
    payload: dict[str, Any],
) -> None:
    """Publish after commit; a lost event must never fail the request."""
    try:
        await publisher.publish(list(participant_ids), event, payload)
    except Exception as e:
        logger.error("Event %s could not be published: %s", event, e)
