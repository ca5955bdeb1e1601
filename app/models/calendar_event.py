import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.queue_entry import utcnow

if TYPE_CHECKING:
    from app.models.user import User


class CalendarEventStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"


class CalendarEvent(Base):
    """A scheduled video call between two users who have been matched."""

    __tablename__ = "calendar_events"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    organizer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    participant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Status: pending until both sides confirm
    status: Mapped[str] = mapped_column(
        String(20), default=CalendarEventStatus.pending.value, nullable=False
    )
    video_link: Mapped[str] = mapped_column(String(500), nullable=False)

    organizer_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    participant_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    organizer: Mapped["User"] = relationship("User", foreign_keys=[organizer_id])
    participant: Mapped["User"] = relationship("User", foreign_keys=[participant_id])

    @property
    def confirmed_by(self) -> list[uuid.UUID]:
        confirmed = []
        if self.organizer_confirmed:
            confirmed.append(self.organizer_id)
        if self.participant_confirmed:
            confirmed.append(self.participant_id)
        return confirmed
