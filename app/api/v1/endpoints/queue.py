from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.endpoints.auth import get_current_user
from app.core.events import EventPublisher, get_event_publisher
from app.database import get_db
from app.schemas.queue import (
    AckResponse,
    BookCallResponse,
    CurrentMatchResponse,
    MatchCountsResponse,
    QueueStatusResponse,
)
from app.schemas.user import UserBrief, UserResponse
from app.services import queue_service

router = APIRouter(prefix="", tags=["queue"])


@router.post("/book", response_model=BookCallResponse)
async def book_call(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> BookCallResponse:
    """
    Join the matching queue.

    Pairs you with the longest-waiting user you have not been matched with
    before, or adds you to the queue if nobody is available.
    Fails with 409 if you are already waiting, matched or booked.
    """
    return await queue_service.book_call(db, publisher, current_user.id)


@router.get("/status", response_model=QueueStatusResponse)
async def get_queue_status(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> QueueStatusResponse:
    """Your queue entry status ("idle" when you have none)."""
    return await queue_service.get_queue_status(db, current_user.id)


@router.delete("/", response_model=AckResponse)
async def leave_queue(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> AckResponse:
    """Stop waiting for a match."""
    return await queue_service.leave_queue(db, publisher, current_user.id)


@router.get("/current-match", response_model=CurrentMatchResponse)
async def get_current_match(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CurrentMatchResponse:
    """Current partner, or your most recent partners when not paired."""
    return await queue_service.get_current_match(db, current_user.id)


@router.get("/match-history", response_model=list[UserBrief])
async def get_match_history(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[UserBrief]:
    users = await queue_service.get_match_history(db, current_user.id)
    return [UserBrief.model_validate(u) for u in users]


@router.get("/match-counts", response_model=MatchCountsResponse)
async def get_match_counts(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MatchCountsResponse:
    counts = await queue_service.get_match_counts(db, current_user.id)
    return MatchCountsResponse(counts=counts)


@router.post("/reset-matches", response_model=AckResponse)
async def reset_matches(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> AckResponse:
    """Forget who you have been matched with, so they can be matched again."""
    return await queue_service.reset_matches(db, publisher, current_user.id)
