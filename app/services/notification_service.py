from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.models.notification import Notification


async def create_notification(
    db: AsyncSession,
    user_id: UUID,
    message: str,
    type: str,
) -> Notification:
    """
    Add a notification inside the caller's transaction.
    Flushed, not committed.
    """
    notification = Notification(user_id=user_id, message=message, type=type)
    db.add(notification)
    await db.flush()
    await db.refresh(notification)
    return notification


async def get_notifications(
    db: AsyncSession,
    user_id: UUID,
    limit: int = 50,
) -> list[Notification]:
    """Most recent notifications first."""
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_as_read(
    db: AsyncSession,
    user_id: UUID,
    notification_id: UUID,
) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise NotFoundError("Notification not found", resource="notification")

    notification.is_read = True
    await db.commit()
    await db.refresh(notification)
    return notification
