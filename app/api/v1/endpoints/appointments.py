from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.endpoints.auth import get_current_user
from app.core.events import EventPublisher, get_event_publisher
from app.database import get_db
from app.schemas.appointment import (
    AppointmentActionResponse,
    DateProposal,
    DateProposalStatus,
    ProposalResponse,
)
from app.schemas.user import UserResponse
from app.services import appointment_service

router = APIRouter(prefix="", tags=["appointments"])


@router.post("/propose", response_model=ProposalResponse)
async def propose_date(
    data: DateProposal,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> ProposalResponse:
    """
    Propose (or change) a date for the call with your match.

    When your partner has proposed exactly the same date and time the
    appointment is booked for both of you.
    """
    return await appointment_service.propose_or_update_date(
        db, publisher, current_user.id, data.proposed_date
    )


@router.get("/status", response_model=DateProposalStatus)
async def get_proposal_status(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DateProposalStatus:
    return await appointment_service.get_date_proposal_status(db, current_user.id)


@router.post("/confirm", response_model=AppointmentActionResponse)
async def confirm_appointment(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> AppointmentActionResponse:
    """Confirm the appointment and leave the queue together with your partner."""
    return await appointment_service.confirm_appointment(db, publisher, current_user.id)


@router.post("/skip", response_model=AppointmentActionResponse)
async def skip_appointment(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> AppointmentActionResponse:
    """Skip this match. Your partner is released back to idle."""
    return await appointment_service.skip_appointment(db, publisher, current_user.id)
