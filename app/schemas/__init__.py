from app.schemas.appointment import (
    AppointmentActionResponse,
    DateProposal,
    DateProposalStatus,
    ProposalResponse,
)
from app.schemas.calendar import (
    CalendarEventCreate,
    CalendarEventResponse,
    CalendarEventUpdate,
)
from app.schemas.message import MarkReadResponse, MessageCreate, MessageResponse
from app.schemas.notification import NotificationResponse
from app.schemas.queue import (
    AckResponse,
    BookCallResponse,
    BookCallState,
    CurrentMatchResponse,
    MatchCountsResponse,
    QueueStatusResponse,
)
from app.schemas.user import Token, TokenPayload, UserBrief, UserCreate, UserResponse

__all__ = [
    "UserCreate",
    "UserResponse",
    "UserBrief",
    "Token",
    "TokenPayload",
    "BookCallResponse",
    "BookCallState",
    "QueueStatusResponse",
    "CurrentMatchResponse",
    "MatchCountsResponse",
    "AckResponse",
    "DateProposal",
    "ProposalResponse",
    "DateProposalStatus",
    "AppointmentActionResponse",
    "NotificationResponse",
    "MessageCreate",
    "MessageResponse",
    "MarkReadResponse",
    "CalendarEventCreate",
    "CalendarEventUpdate",
    "CalendarEventResponse",
]
