"""
Video call scheduling between matched users.

The organizer creates an event with a participant from their match history.
Both sides must confirm before the event is "confirmed"; moving the event
puts it back to "pending" and clears both confirmations. Every change
leaves a notification for the other side.
"""

import logging
import secrets
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.dates import as_utc, parse_datetime
from app.core.events import EventPublisher, QueueEvent, publish_safely
from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidDateError,
    NotFoundError,
)
from app.database import atomic
from app.models.calendar_event import CalendarEvent, CalendarEventStatus
from app.models.notification import Notification
from app.models.user import User
from app.schemas.calendar import CalendarEventCreate, CalendarEventResponse, CalendarEventUpdate
from app.schemas.notification import NotificationResponse
from app.schemas.queue import AckResponse
from app.services import message_service, notification_service, user_service

logger = logging.getLogger(__name__)


def generate_video_link() -> str:
    return f"{settings.VIDEO_BASE_URL.rstrip('/')}/{secrets.token_urlsafe(9)}"


def validate_window(start: datetime, end: datetime) -> None:
    if start < datetime.now(timezone.utc):
        raise InvalidDateError("Start time cannot be in the past.", field="start_time")
    if end <= start:
        raise InvalidDateError("End time must be after start time.", field="end_time")


async def _get_user(db: AsyncSession, user_id: UUID) -> User:
    user = await user_service.get_user_by_id(db, user_id)
    if user is None:
        raise NotFoundError("User not found", resource="user")
    return user


async def _get_event_for_update(db: AsyncSession, event_id: UUID) -> CalendarEvent | None:
    result = await db.execute(
        select(CalendarEvent)
        .where(CalendarEvent.id == event_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _get_organized_event(
    db: AsyncSession, user_id: UUID, event_id: UUID
) -> CalendarEvent:
    """Only the organizer may edit or cancel; anyone else sees 404."""
    event = await _get_event_for_update(db, event_id)
    if event is None or event.organizer_id != user_id:
        raise NotFoundError("Event not found", resource="calendar_event")
    return event


async def _notify(
    publisher: EventPublisher, notifications: list[Notification]
) -> None:
    for notification in notifications:
        await publish_safely(
            publisher,
            [notification.user_id],
            QueueEvent.NOTIFICATION,
            NotificationResponse.model_validate(notification).model_dump(),
        )


async def create_event(
    db: AsyncSession,
    publisher: EventPublisher,
    user_id: UUID,
    data: CalendarEventCreate,
) -> CalendarEvent:
    start = parse_datetime(data.start_time, "start_time")
    end = parse_datetime(data.end_time, "end_time")
    validate_window(start, end)

    organizer = await _get_user(db, user_id)
    if not await message_service.has_matched_with(db, user_id, data.participant_id):
        raise AuthorizationError("Participant is not one of your matches")

    async with atomic(db):
        event = CalendarEvent(
            organizer_id=user_id,
            participant_id=data.participant_id,
            title=data.title,
            start_time=start,
            end_time=end,
            video_link=generate_video_link(),
        )
        db.add(event)
        await db.flush()
        notification = await notification_service.create_notification(
            db,
            user_id=data.participant_id,
            message=f"New video call request from {organizer.name}",
            type="call_request",
        )

    logger.info("Video call %s scheduled by %s with %s", event.id, user_id, data.participant_id)
    await _notify(publisher, [notification])
    return event


async def get_events(db: AsyncSession, user_id: UUID) -> list[CalendarEvent]:
    """Events the user organizes or takes part in, latest start first."""
    result = await db.execute(
        select(CalendarEvent)
        .where(
            or_(
                CalendarEvent.organizer_id == user_id,
                CalendarEvent.participant_id == user_id,
            )
        )
        .order_by(CalendarEvent.start_time.desc())
    )
    return list(result.scalars().all())


async def confirm_event(
    db: AsyncSession,
    publisher: EventPublisher,
    user_id: UUID,
    event_id: UUID,
) -> CalendarEvent:
    """Record the caller's confirmation; the second one confirms the event."""
    notifications: list[Notification] = []

    async with atomic(db):
        event = await _get_event_for_update(db, event_id)
        if event is None:
            raise NotFoundError("Event not found", resource="calendar_event")
        if user_id not in (event.organizer_id, event.participant_id):
            raise AuthorizationError("Not authorized to confirm this event")
        if user_id in event.confirmed_by:
            raise ConflictError("Event already confirmed by you")

        if user_id == event.organizer_id:
            event.organizer_confirmed = True
        else:
            event.participant_confirmed = True

        if event.organizer_confirmed and event.participant_confirmed:
            event.status = CalendarEventStatus.confirmed.value
            message = f"Video call confirmed for {as_utc(event.start_time).isoformat()}"
            for recipient in (event.organizer_id, event.participant_id):
                notifications.append(
                    await notification_service.create_notification(
                        db, user_id=recipient, message=message, type="call_confirmation"
                    )
                )

    if event.status == CalendarEventStatus.confirmed.value:
        logger.info("Video call %s confirmed", event.id)
        await publish_safely(
            publisher,
            [event.organizer_id, event.participant_id],
            QueueEvent.CALL_CONFIRMED,
            CalendarEventResponse.model_validate(event).model_dump(),
        )
        await _notify(publisher, notifications)
    return event


async def update_event(
    db: AsyncSession,
    publisher: EventPublisher,
    user_id: UUID,
    event_id: UUID,
    data: CalendarEventUpdate,
) -> CalendarEvent:
    organizer = await _get_user(db, user_id)

    async with atomic(db):
        event = await _get_organized_event(db, user_id, event_id)

        if data.start_time is not None or data.end_time is not None:
            start = (
                parse_datetime(data.start_time, "start_time")
                if data.start_time is not None
                else as_utc(event.start_time)
            )
            end = (
                parse_datetime(data.end_time, "end_time")
                if data.end_time is not None
                else as_utc(event.end_time)
            )
            validate_window(start, end)
            event.start_time = start
            event.end_time = end
            event.status = CalendarEventStatus.pending.value
            event.organizer_confirmed = False
            event.participant_confirmed = False

        if data.title is not None:
            event.title = data.title

        notification = await notification_service.create_notification(
            db,
            user_id=event.participant_id,
            message=f"Video call schedule updated by {organizer.name}",
            type="call_update",
        )

    await _notify(publisher, [notification])
    return event


async def cancel_event(
    db: AsyncSession,
    publisher: EventPublisher,
    user_id: UUID,
    event_id: UUID,
) -> AckResponse:
    organizer = await _get_user(db, user_id)

    async with atomic(db):
        event = await _get_organized_event(db, user_id, event_id)
        participant_id = event.participant_id
        await db.delete(event)
        notification = await notification_service.create_notification(
            db,
            user_id=participant_id,
            message=f"Video call canceled by {organizer.name}",
            type="call_cancelation",
        )

    logger.info("Video call %s canceled by %s", event_id, user_id)
    await _notify(publisher, [notification])
    return AckResponse(message="Event canceled successfully")
