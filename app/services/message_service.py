"""Chat between users who have been matched with each other."""

from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.events import EventPublisher, QueueEvent, publish_safely
from app.core.exceptions import AuthorizationError
from app.models.match_history import MatchHistory
from app.models.message import Message
from app.schemas.message import MessageResponse


async def has_matched_with(
    db: AsyncSession,
    user_id: UUID,
    other_user_id: UUID,
) -> bool:
    """Whether other_user_id is in user_id's match history."""
    result = await db.execute(
        select(MatchHistory.id).where(
            MatchHistory.user_id == user_id,
            MatchHistory.partner_id == other_user_id,
        )
    )
    return result.first() is not None


async def get_chat_history(
    db: AsyncSession,
    user_id: UUID,
    other_user_id: UUID,
    skip: int = 0,
    limit: int = 50,
) -> list[Message]:
    """Messages between two users, newest page first, returned oldest to newest."""
    result = await db.execute(
        select(Message)
        .where(
            or_(
                and_(Message.sender_id == user_id, Message.receiver_id == other_user_id),
                and_(Message.sender_id == other_user_id, Message.receiver_id == user_id),
            )
        )
        .order_by(Message.created_at.desc())
        .offset(skip)
        .limit(limit)
    )
    # Reverse to get chronological order for display
    messages = list(result.scalars().all())
    messages.reverse()
    return messages


async def create_message(
    db: AsyncSession,
    sender_id: UUID,
    receiver_id: UUID,
    content: str,
) -> Message:
    message = Message(
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=content,
    )
    db.add(message)
    await db.commit()
    await db.refresh(message)
    return message


async def mark_messages_as_read(
    db: AsyncSession,
    reader_id: UUID,
    sender_id: UUID,
) -> int:
    """Mark everything sender_id sent to reader_id as read. Returns count updated."""
    result = await db.execute(
        update(Message)
        .where(
            Message.sender_id == sender_id,
            Message.receiver_id == reader_id,
            Message.is_read == False,  # noqa: E712
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount


async def send_message(
    db: AsyncSession,
    publisher: EventPublisher,
    sender_id: UUID,
    receiver_id: UUID,
    content: str,
) -> MessageResponse:
    """
    Store a message to a previous match partner and push it to both users.
    Used by the HTTP chat route and by the WebSocket "send-message" frame.
    """
    if not await has_matched_with(db, sender_id, receiver_id):
        raise AuthorizationError("Chat not available with this user")

    message = await create_message(db, sender_id, receiver_id, content)
    response = MessageResponse.model_validate(message)
    await publish_safely(
        publisher,
        [sender_id, receiver_id],
        QueueEvent.NEW_MESSAGE,
        response.model_dump(),
    )
    return response
