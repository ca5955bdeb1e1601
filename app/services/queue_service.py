"""
Matchmaking queue.

Pairs a requesting user with the oldest eligible waiting entry, or puts them
in the queue. The conditional "waiting -> matched" UPDATE in _claim_entry is
the only point of mutual exclusion: two concurrent requesters can both see
the same candidate, but only one of them gets rowcount == 1.
"""

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.events import EventPublisher, QueueEvent, publish_safely
from app.core.exceptions import AlreadyActiveError, NotFoundError
from app.database import atomic
from app.models.match_history import MatchHistory
from app.models.queue_entry import (
    ACTIVE_STATUSES,
    PAIRED_STATUSES,
    QueueEntry,
    QueueStatus,
)
from app.models.user import User
from app.schemas.queue import (
    AckResponse,
    BookCallResponse,
    BookCallState,
    CurrentMatchResponse,
    QueueStatusResponse,
)
from app.schemas.user import UserBrief
from app.services import user_service

logger = logging.getLogger(__name__)

EXCLUSION_POLICIES = ("history", "cooldown", "none")


async def get_queue_entry(db: AsyncSession, user_id: UUID) -> QueueEntry | None:
    """Get the user's queue entry (any status)."""
    result = await db.execute(
        select(QueueEntry)
        .where(QueueEntry.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_excluded_partner_ids(
    db: AsyncSession,
    user_id: UUID,
    policy: str | None = None,
    cooldown_days: int | None = None,
) -> set[UUID]:
    """
    Partners the user must not be paired with again.

    history:  every prior partner
    cooldown: partners matched within the last cooldown_days
    none:     nobody
    """
    policy = policy or settings.MATCH_EXCLUSION_POLICY
    if policy not in EXCLUSION_POLICIES:
        raise ValueError(f"Unknown match exclusion policy: {policy}")
    if policy == "none":
        return set()

    query = select(MatchHistory.partner_id).where(MatchHistory.user_id == user_id)
    if policy == "cooldown":
        days = settings.MATCH_COOLDOWN_DAYS if cooldown_days is None else cooldown_days
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        query = query.where(MatchHistory.last_matched_at >= cutoff)

    result = await db.execute(query)
    return set(result.scalars().all())


async def _find_candidate_id(db: AsyncSession, excluded_ids: set[UUID]) -> int | None:
    """Oldest waiting entry not owned by an excluded user (FIFO, then arrival order)."""
    query = select(QueueEntry.id).where(QueueEntry.status == QueueStatus.waiting.value)
    if excluded_ids:
        query = query.where(QueueEntry.user_id.not_in(list(excluded_ids)))
    result = await db.execute(
        query.order_by(QueueEntry.created_at.asc(), QueueEntry.id.asc()).limit(1)
    )
    return result.scalar_one_or_none()


async def _claim_entry(db: AsyncSession, entry_id: int, requester_id: UUID) -> bool:
    """Compare-and-swap: flip the entry to matched only if it is still waiting."""
    result = await db.execute(
        update(QueueEntry)
        .where(
            QueueEntry.id == entry_id,
            QueueEntry.status == QueueStatus.waiting.value,
        )
        .values(
            status=QueueStatus.matched.value,
            matched_with_id=requester_id,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def claim_waiting_entry(
    db: AsyncSession,
    requester_id: UUID,
    excluded_ids: set[UUID],
    max_retries: int | None = None,
) -> QueueEntry | None:
    """
    Try up to max_retries times to claim a waiting entry for the requester.
    Returns the claimed (now matched) entry, or None when attempts run out.
    """
    max_retries = settings.MATCH_MAX_RETRIES if max_retries is None else max_retries

    for attempt in range(1, max_retries + 1):
        candidate_id = await _find_candidate_id(db, excluded_ids)
        if candidate_id is not None and await _claim_entry(db, candidate_id, requester_id):
            return await db.get(QueueEntry, candidate_id, populate_existing=True)
        logger.debug(
            "No claimable entry for %s (attempt %d/%d, candidate=%s)",
            requester_id,
            attempt,
            max_retries,
            candidate_id,
        )
    return None


async def _record_pairing(
    db: AsyncSession,
    user_id: UUID,
    partner_id: UUID,
    matched_at: datetime,
) -> None:
    """Add partner to the user's history, bumping the pair's match count."""
    result = await db.execute(
        select(MatchHistory).where(
            MatchHistory.user_id == user_id,
            MatchHistory.partner_id == partner_id,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        db.add(
            MatchHistory(
                user_id=user_id,
                partner_id=partner_id,
                match_count=1,
                last_matched_at=matched_at,
            )
        )
    else:
        row.match_count += 1
        row.last_matched_at = matched_at


async def book_call(
    db: AsyncSession,
    publisher: EventPublisher,
    user_id: UUID,
) -> BookCallResponse:
    """
    Pair the user with the longest-waiting eligible user, or enqueue them.
    Everything below runs in one transaction; events go out after commit.
    """
    user = await user_service.get_user_by_id(db, user_id)
    if user is None:
        raise NotFoundError("User not found", resource="user")

    partner: User | None = None
    try:
        async with atomic(db):
            existing = await get_queue_entry(db, user_id)
            if existing is not None:
                if existing.status in ACTIVE_STATUSES:
                    raise AlreadyActiveError(
                        status=existing.status,
                        partner_id=str(existing.matched_with_id) if existing.matched_with_id else None,
                    )
                # Leftover idle entry from a skipped pairing
                await db.delete(existing)
                await db.flush()

            excluded = await get_excluded_partner_ids(db, user_id)
            excluded.add(user_id)

            claimed = await claim_waiting_entry(db, user_id, excluded)
            if claimed is not None:
                now = datetime.now(timezone.utc)
                db.add(
                    QueueEntry(
                        user_id=user_id,
                        status=QueueStatus.matched.value,
                        matched_with_id=claimed.user_id,
                    )
                )
                await _record_pairing(db, user_id, claimed.user_id, now)
                await _record_pairing(db, claimed.user_id, user_id, now)
                partner = await user_service.get_user_by_id(db, claimed.user_id)
            else:
                db.add(QueueEntry(user_id=user_id, status=QueueStatus.waiting.value))
    except IntegrityError:
        # Only a concurrent insert of the same user's entry means AlreadyActive
        entry = await get_queue_entry(db, user_id)
        if entry is None or entry.status not in ACTIVE_STATUSES:
            raise
        raise AlreadyActiveError(
            status=entry.status,
            partner_id=str(entry.matched_with_id) if entry.matched_with_id else None,
        )

    if partner is not None:
        logger.info("Matched user %s with %s", user_id, partner.id)
        me = UserBrief.model_validate(user)
        them = UserBrief.model_validate(partner)
        await publish_safely(publisher, [user_id], QueueEvent.MATCHED, {"partner": them.model_dump()})
        await publish_safely(publisher, [partner.id], QueueEvent.MATCHED, {"partner": me.model_dump()})
        return BookCallResponse(
            state=BookCallState.matched,
            message="Match found!",
            partner=them,
        )

    logger.info("User %s added to the waiting queue", user_id)
    await publish_safely(
        publisher, [user_id], QueueEvent.QUEUE_UPDATED, {"state": QueueStatus.waiting.value}
    )
    return BookCallResponse(state=BookCallState.waiting, message="Added to queue")


async def get_queue_status(db: AsyncSession, user_id: UUID) -> QueueStatusResponse:
    entry = await get_queue_entry(db, user_id)
    if entry is None:
        return QueueStatusResponse(status=QueueStatus.idle.value)
    return QueueStatusResponse(
        status=entry.status,
        partner_id=entry.matched_with_id,
        queued_at=entry.created_at,
    )


async def leave_queue(
    db: AsyncSession,
    publisher: EventPublisher,
    user_id: UUID,
) -> AckResponse:
    """Withdraw a waiting entry. Matched or booked users must skip instead."""
    async with atomic(db):
        entry = await get_queue_entry(db, user_id)
        if entry is not None:
            if entry.status in PAIRED_STATUSES:
                raise AlreadyActiveError(
                    status=entry.status,
                    partner_id=str(entry.matched_with_id) if entry.matched_with_id else None,
                    message="You are already matched; skip the appointment instead",
                )
            await db.delete(entry)

    await publish_safely(
        publisher, [user_id], QueueEvent.QUEUE_UPDATED, {"state": QueueStatus.idle.value}
    )
    return AckResponse(message="Left the queue")


async def get_match_history(
    db: AsyncSession,
    user_id: UUID,
    limit: int | None = None,
) -> list[User]:
    """Prior partners, most recently matched first."""
    query = (
        select(User)
        .join(MatchHistory, MatchHistory.partner_id == User.id)
        .where(MatchHistory.user_id == user_id)
        .order_by(MatchHistory.last_matched_at.desc(), User.name.asc())
    )
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_match_counts(db: AsyncSession, user_id: UUID) -> dict[UUID, int]:
    result = await db.execute(
        select(MatchHistory.partner_id, MatchHistory.match_count).where(
            MatchHistory.user_id == user_id
        )
    )
    return {partner_id: count for partner_id, count in result.all()}


async def get_current_match(db: AsyncSession, user_id: UUID) -> CurrentMatchResponse:
    """
    Current partner from an active pairing; otherwise recent match
    history; otherwise NotFound.
    """
    entry = await get_queue_entry(db, user_id)
    if entry is not None and entry.status in PAIRED_STATUSES and entry.matched_with_id:
        partner = await user_service.get_user_by_id(db, entry.matched_with_id)
        if partner is not None:
            return CurrentMatchResponse(
                kind="current",
                partner=UserBrief.model_validate(partner),
            )

    history = await get_match_history(db, user_id, limit=settings.MATCH_HISTORY_LIMIT)
    if history:
        return CurrentMatchResponse(
            kind="history",
            partners=[UserBrief.model_validate(u) for u in history],
        )

    raise NotFoundError("No current match found", resource="match")


async def reset_matches(
    db: AsyncSession,
    publisher: EventPublisher,
    user_id: UUID,
) -> AckResponse:
    """Forget the user's match history and counts. Queue entries are untouched."""
    async with atomic(db):
        await db.execute(delete(MatchHistory).where(MatchHistory.user_id == user_id))

    logger.info("Match history reset for user %s", user_id)
    await publish_safely(
        publisher, [user_id], QueueEvent.QUEUE_UPDATED, {"match_history_reset": True}
    )
    return AckResponse(message="Match history reset successfully")
