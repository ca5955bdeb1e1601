from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel

from app.schemas.user import UserBrief


class BookCallState(str, Enum):
    matched = "matched"
    waiting = "waiting"


class BookCallResponse(BaseModel):
    """Result of joining the queue"""

    state: BookCallState
    message: str
    partner: UserBrief | None = None


class QueueStatusResponse(BaseModel):
    """Caller's own queue entry, or idle when there is none"""

    status: str
    partner_id: UUID | None = None
    queued_at: datetime | None = None


class CurrentMatchResponse(BaseModel):
    """
    Current partner if a pairing is active, otherwise the most
    recent partners from match history.
    """

    kind: str  # "current" or "history"
    partner: UserBrief | None = None
    partners: list[UserBrief] = []


class MatchCountsResponse(BaseModel):
    counts: dict[UUID, int]


class AckResponse(BaseModel):
    message: str
