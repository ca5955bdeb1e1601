from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class DateProposal(BaseModel):
    """Proposed appointment time; parsed by the service so a bad value maps to InvalidDate"""

    proposed_date: Any


class ProposalResponse(BaseModel):
    state: str  # "matched" or "booked"
    message: str
    my_proposed_date: datetime | None = None
    their_proposed_date: datetime | None = None
    appointment: datetime | None = None


class DateProposalStatus(BaseModel):
    status: str
    partner_id: UUID | None = None
    my_proposed_date: datetime | None = None
    their_proposed_date: datetime | None = None
    confirmed_appointment: datetime | None = None


class AppointmentActionResponse(BaseModel):
    state: str
    message: str
