import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.user import User


class QueueStatus(str, Enum):
    idle = "idle"
    waiting = "waiting"
    matched = "matched"
    booked = "booked"


ACTIVE_STATUSES = (QueueStatus.waiting.value, QueueStatus.matched.value, QueueStatus.booked.value)
PAIRED_STATUSES = (QueueStatus.matched.value, QueueStatus.booked.value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QueueEntry(Base):
    __tablename__ = "queue_entries"

    # Autoincrement id doubles as the arrival sequence for FIFO tie-breaks
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # One entry per user at most
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )

    # Status: idle, waiting, matched, booked
    status: Mapped[str] = mapped_column(
        String(20), default=QueueStatus.waiting.value, nullable=False, index=True
    )

    # Partner, set iff status is matched or booked
    matched_with_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Negotiation state
    proposed_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    confirmed_appointment: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    user: Mapped["User"] = relationship(
        "User", foreign_keys=[user_id], back_populates="queue_entry"
    )
    matched_with: Mapped["User | None"] = relationship(
        "User", foreign_keys=[matched_with_id]
    )
