from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.endpoints.auth import get_current_user
from app.core.events import EventPublisher, get_event_publisher
from app.database import get_db
from app.schemas.calendar import (
    CalendarEventCreate,
    CalendarEventResponse,
    CalendarEventUpdate,
)
from app.schemas.queue import AckResponse
from app.schemas.user import UserResponse
from app.services import calendar_service

router = APIRouter(prefix="", tags=["calendar"])


@router.post("/events", response_model=CalendarEventResponse, status_code=201)
async def create_event(
    data: CalendarEventCreate,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> CalendarEventResponse:
    """Schedule a video call with one of your matches."""
    event = await calendar_service.create_event(db, publisher, current_user.id, data)
    return CalendarEventResponse.model_validate(event)


@router.get("/events", response_model=list[CalendarEventResponse])
async def get_events(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[CalendarEventResponse]:
    events = await calendar_service.get_events(db, current_user.id)
    return [CalendarEventResponse.model_validate(e) for e in events]


@router.post("/events/{event_id}/confirm", response_model=CalendarEventResponse)
async def confirm_event(
    event_id: UUID,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> CalendarEventResponse:
    event = await calendar_service.confirm_event(db, publisher, current_user.id, event_id)
    return CalendarEventResponse.model_validate(event)


@router.put("/events/{event_id}", response_model=CalendarEventResponse)
async def update_event(
    event_id: UUID,
    data: CalendarEventUpdate,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> CalendarEventResponse:
    """Organizer only. Moving the call asks both sides to confirm again."""
    event = await calendar_service.update_event(
        db, publisher, current_user.id, event_id, data
    )
    return CalendarEventResponse.model_validate(event)


@router.delete("/events/{event_id}", response_model=AckResponse)
async def cancel_event(
    event_id: UUID,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> AckResponse:
    return await calendar_service.cancel_event(db, publisher, current_user.id, event_id)
