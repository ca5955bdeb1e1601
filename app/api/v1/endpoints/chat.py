from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.endpoints.auth import get_current_user
from app.core.events import EventPublisher, get_event_publisher
from app.core.exceptions import AuthorizationError
from app.database import get_db
from app.schemas.message import MarkReadResponse, MessageCreate, MessageResponse
from app.schemas.user import UserResponse
from app.services import message_service

router = APIRouter(prefix="", tags=["chat"])


async def require_match_partner(
    receiver_id: UUID,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UUID:
    """Chat is only open with users from your match history."""
    if not await message_service.has_matched_with(db, current_user.id, receiver_id):
        raise AuthorizationError("Chat not available with this user")
    return receiver_id


@router.get("/{receiver_id}", response_model=list[MessageResponse])
async def get_chat_history(
    partner_id: Annotated[UUID, Depends(require_match_partner)],
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
) -> list[MessageResponse]:
    messages = await message_service.get_chat_history(
        db, current_user.id, partner_id, skip, limit
    )
    return [MessageResponse.model_validate(m) for m in messages]


@router.post("/{receiver_id}", response_model=MessageResponse, status_code=201)
async def send_message(
    data: MessageCreate,
    partner_id: Annotated[UUID, Depends(require_match_partner)],
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> MessageResponse:
    return await message_service.send_message(
        db, publisher, current_user.id, partner_id, data.content
    )


@router.post("/{receiver_id}/read", response_model=MarkReadResponse)
async def mark_chat_as_read(
    partner_id: Annotated[UUID, Depends(require_match_partner)],
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MarkReadResponse:
    """Mark messages received from this user as read."""
    updated = await message_service.mark_messages_as_read(
        db, current_user.id, partner_id
    )
    return MarkReadResponse(updated=updated)
