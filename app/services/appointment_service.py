"""
Appointment negotiation between a matched pair.

Each side writes its own proposed_date onto its queue entry. When both
proposals are the same instant the pair converges: both entries become
"booked" with confirmed_appointment set. Skip and confirm end the pairing.

Both entries of a pair are locked (in id order) before any read-modify-write,
so two partners proposing at the same moment cannot both miss convergence.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dates import as_utc, parse_datetime
from app.core.events import EventPublisher, QueueEvent, publish_safely
from app.core.exceptions import (
    AppointmentAlreadyBookedError,
    NoActiveMatchError,
    NotFoundError,
)
from app.database import atomic
from app.models.queue_entry import PAIRED_STATUSES, QueueEntry, QueueStatus
from app.schemas.appointment import (
    AppointmentActionResponse,
    DateProposalStatus,
    ProposalResponse,
)
from app.schemas.notification import NotificationResponse
from app.services import notification_service, user_service

logger = logging.getLogger(__name__)


async def _get_paired_entry(db: AsyncSession, user_id: UUID) -> QueueEntry | None:
    result = await db.execute(
        select(QueueEntry)
        .where(
            QueueEntry.user_id == user_id,
            QueueEntry.status.in_(PAIRED_STATUSES),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _lock_pair(
    db: AsyncSession,
    user_id: UUID,
    missing_message: str,
) -> tuple[QueueEntry, QueueEntry | None]:
    """
    Lock the caller's and the partner's entries and return them.
    The partner entry is None if it no longer points back at the caller.
    """
    entry = await _get_paired_entry(db, user_id)
    if entry is None or entry.matched_with_id is None:
        raise NoActiveMatchError(missing_message)
    partner_id = entry.matched_with_id

    result = await db.execute(
        select(QueueEntry)
        .where(QueueEntry.user_id.in_([user_id, partner_id]))
        .order_by(QueueEntry.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    entries = {e.user_id: e for e in result.scalars().all()}

    entry = entries.get(user_id)
    if (
        entry is None
        or entry.status not in PAIRED_STATUSES
        or entry.matched_with_id != partner_id
    ):
        raise NoActiveMatchError(missing_message)

    partner_entry = entries.get(partner_id)
    if partner_entry is not None and (
        partner_entry.status not in PAIRED_STATUSES
        or partner_entry.matched_with_id != user_id
    ):
        logger.warning(
            "Asymmetric pairing: %s -> %s but partner points at %s",
            user_id,
            partner_id,
            partner_entry.matched_with_id,
        )
        partner_entry = None
    return entry, partner_entry


async def propose_or_update_date(
    db: AsyncSession,
    publisher: EventPublisher,
    user_id: UUID,
    raw_date: Any,
) -> ProposalResponse:
    """
    Record the caller's proposal and compare it with the partner's.

    - partner has no proposal: waiting on partner
    - proposals differ: both kept, either side may propose again
    - proposals equal: both entries booked

    A booked pair accepts the same date again (no-op) and rejects any other.
    """
    proposed = parse_datetime(raw_date, "proposed_date")

    async with atomic(db):
        entry, partner_entry = await _lock_pair(
            db, user_id, "No active match to propose a date."
        )
        partner_id = entry.matched_with_id

        if entry.status == QueueStatus.booked.value:
            appointment = as_utc(entry.confirmed_appointment)
            if appointment != proposed:
                raise AppointmentAlreadyBookedError(appointment.isoformat())
            return ProposalResponse(
                state=QueueStatus.booked.value,
                message="Appointment already booked for this date.",
                my_proposed_date=proposed,
                their_proposed_date=proposed,
                appointment=appointment,
            )

        if partner_entry is None:
            raise NoActiveMatchError("Your partner is no longer in this match.")

        entry.proposed_date = proposed
        theirs = as_utc(partner_entry.proposed_date)

        if theirs is not None and theirs == proposed:
            for side in (entry, partner_entry):
                side.status = QueueStatus.booked.value
                side.confirmed_appointment = proposed
            response = ProposalResponse(
                state=QueueStatus.booked.value,
                message="Both users proposed the same date. Appointment booked.",
                my_proposed_date=proposed,
                their_proposed_date=theirs,
                appointment=proposed,
            )
        elif theirs is None:
            response = ProposalResponse(
                state=QueueStatus.matched.value,
                message="Date proposed. Waiting on your partner.",
                my_proposed_date=proposed,
            )
        else:
            response = ProposalResponse(
                state=QueueStatus.matched.value,
                message="Your partner proposed a different date.",
                my_proposed_date=proposed,
                their_proposed_date=theirs,
            )

    if response.state == QueueStatus.booked.value:
        logger.info("Appointment booked for %s and %s at %s", user_id, partner_id, proposed)
        await publish_safely(
            publisher,
            [user_id, partner_id],
            QueueEvent.APPOINTMENT_BOOKED,
            {"appointment": proposed},
        )
    else:
        await publish_safely(
            publisher,
            [user_id, partner_id],
            QueueEvent.DATE_PROPOSED,
            {"proposed_by": user_id, "proposed_date": proposed},
        )
    return response


async def confirm_appointment(
    db: AsyncSession,
    publisher: EventPublisher,
    user_id: UUID,
) -> AppointmentActionResponse:
    """
    Confirm directly, without date negotiation.
    Removes both queue entries and notifies the partner.
    """
    user = await user_service.get_user_by_id(db, user_id)
    if user is None:
        raise NotFoundError("User not found", resource="user")

    async with atomic(db):
        entry, partner_entry = await _lock_pair(
            db, user_id, "No active match to confirm an appointment."
        )
        partner_id = entry.matched_with_id

        await db.delete(entry)
        if partner_entry is not None:
            await db.delete(partner_entry)

        notification = await notification_service.create_notification(
            db,
            user_id=partner_id,
            message=f"{user.name} has confirmed the appointment.",
            type="appointment_confirmation",
        )

    logger.info("Appointment confirmed by %s with %s", user_id, partner_id)
    payload = {"state": QueueStatus.idle.value, "confirmed_by": user_id}
    await publish_safely(
        publisher, [user_id, partner_id], QueueEvent.APPOINTMENT_CONFIRMED, payload
    )
    await publish_safely(
        publisher,
        [partner_id],
        QueueEvent.NOTIFICATION,
        NotificationResponse.model_validate(notification).model_dump(),
    )
    return AppointmentActionResponse(
        state=QueueStatus.idle.value,
        message="Appointment confirmed and both users removed from the queue.",
    )


async def skip_appointment(
    db: AsyncSession,
    publisher: EventPublisher,
    user_id: UUID,
) -> AppointmentActionResponse:
    """Drop the caller's entry and reset the partner to a clean idle entry."""
    async with atomic(db):
        entry, partner_entry = await _lock_pair(
            db, user_id, "No active match to skip an appointment."
        )
        partner_id = entry.matched_with_id

        await db.delete(entry)
        if partner_entry is not None:
            partner_entry.status = QueueStatus.idle.value
            partner_entry.matched_with_id = None
            partner_entry.proposed_date = None
            partner_entry.confirmed_appointment = None

    logger.info("Appointment skipped by %s (partner %s)", user_id, partner_id)
    await publish_safely(
        publisher,
        [user_id, partner_id],
        QueueEvent.APPOINTMENT_SKIPPED,
        {"state": QueueStatus.idle.value, "skipped_by": user_id},
    )
    return AppointmentActionResponse(
        state=QueueStatus.idle.value,
        message="Appointment skipped. You are now idle.",
    )


async def get_date_proposal_status(db: AsyncSession, user_id: UUID) -> DateProposalStatus:
    result = await db.execute(
        select(QueueEntry)
        .where(QueueEntry.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    entry = result.scalar_one_or_none()
    if entry is None or entry.status == QueueStatus.idle.value:
        return DateProposalStatus(status=QueueStatus.idle.value)

    theirs = None
    if entry.matched_with_id is not None:
        result = await db.execute(
            select(QueueEntry.proposed_date).where(
                QueueEntry.user_id == entry.matched_with_id,
                QueueEntry.matched_with_id == user_id,
            )
        )
        theirs = as_utc(result.scalar_one_or_none())

    return DateProposalStatus(
        status=entry.status,
        partner_id=entry.matched_with_id,
        my_proposed_date=as_utc(entry.proposed_date),
        their_proposed_date=theirs,
        confirmed_appointment=as_utc(entry.confirmed_appointment),
    )
