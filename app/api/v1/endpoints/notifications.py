from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.endpoints.auth import get_current_user
from app.database import get_db
from app.schemas.notification import NotificationResponse
from app.schemas.user import UserResponse
from app.services import notification_service

router = APIRouter(prefix="", tags=["notifications"])


@router.get("/", response_model=list[NotificationResponse])
async def get_notifications(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: int = Query(50, ge=1, le=100),
) -> list[NotificationResponse]:
    notifications = await notification_service.get_notifications(db, current_user.id, limit)
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_as_read(
    notification_id: UUID,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> NotificationResponse:
    notification = await notification_service.mark_as_read(
        db, current_user.id, notification_id
    )
    return NotificationResponse.model_validate(notification)
