"""Service-level tests for matchmaking: claiming, FIFO order, exclusion and atomicity."""

import asyncio
import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.events import QueueEvent
from app.core.exceptions import AlreadyActiveError
from app.models.match_history import MatchHistory
from app.models.queue_entry import QueueEntry, QueueStatus
from app.models.user import User
from app.services import queue_service

T0 = datetime(2030, 1, 1, 9, 0, tzinfo=timezone.utc)


async def make_user(db: AsyncSession, name: str) -> User:
    user = User(
        email=f"{name.lower()}-{uuid.uuid4().hex[:6]}@example.com",
        password_hash="not-a-real-hash",
        name=name,
    )
    db.add(user)
    await db.commit()
    return user


async def make_waiting(db: AsyncSession, user: User, created_at: datetime) -> QueueEntry:
    entry = QueueEntry(
        user_id=user.id,
        status=QueueStatus.waiting.value,
        created_at=created_at,
    )
    db.add(entry)
    await db.commit()
    return entry


async def entry_for(db: AsyncSession, user: User) -> QueueEntry | None:
    return await queue_service.get_queue_entry(db, user.id)


class FailingPublisher:
    async def publish(self, participant_ids, event, payload):
        raise ConnectionError("socket gone")


@pytest.mark.asyncio
async def test_claim_succeeds_only_once(db_session: AsyncSession):
    alice = await make_user(db_session, "Alice")
    bob = await make_user(db_session, "Bob")
    carol = await make_user(db_session, "Carol")
    entry = await make_waiting(db_session, alice, T0)

    first = await queue_service._claim_entry(db_session, entry.id, bob.id)
    second = await queue_service._claim_entry(db_session, entry.id, carol.id)
    await db_session.commit()

    assert first is True
    assert second is False
    claimed = await entry_for(db_session, alice)
    assert claimed.status == "matched"
    assert claimed.matched_with_id == bob.id


@pytest.mark.asyncio
async def test_claim_retries_after_losing_a_race(db_session: AsyncSession, monkeypatch):
    alice = await make_user(db_session, "Alice")
    bob = await make_user(db_session, "Bob")
    carol = await make_user(db_session, "Carol")
    dave = await make_user(db_session, "Dave")
    lost = await make_waiting(db_session, alice, T0)
    await make_waiting(db_session, bob, T0 + timedelta(minutes=1))

    # Someone else claims Alice between our read and our update
    await queue_service._claim_entry(db_session, lost.id, dave.id)

    real_find = queue_service._find_candidate_id
    calls = []

    async def stale_then_real(db, excluded_ids):
        calls.append(1)
        if len(calls) == 1:
            return lost.id
        return await real_find(db, excluded_ids)

    monkeypatch.setattr(queue_service, "_find_candidate_id", stale_then_real)

    claimed = await queue_service.claim_waiting_entry(db_session, carol.id, {carol.id})

    assert len(calls) == 2
    assert claimed is not None
    assert claimed.user_id == bob.id
    assert claimed.matched_with_id == carol.id


@pytest.mark.asyncio
async def test_claim_gives_up_after_max_retries(db_session: AsyncSession, monkeypatch):
    alice = await make_user(db_session, "Alice")
    bob = await make_user(db_session, "Bob")
    entry = await make_waiting(db_session, alice, T0)
    entry.status = QueueStatus.matched.value
    await db_session.commit()

    calls = []

    async def always_stale(db, excluded_ids):
        calls.append(1)
        return entry.id

    monkeypatch.setattr(queue_service, "_find_candidate_id", always_stale)

    claimed = await queue_service.claim_waiting_entry(db_session, bob.id, {bob.id}, max_retries=3)

    assert claimed is None
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_claim_returns_none_when_queue_is_empty(db_session: AsyncSession):
    alice = await make_user(db_session, "Alice")

    assert await queue_service.claim_waiting_entry(db_session, alice.id, {alice.id}) is None


@pytest.mark.asyncio
async def test_oldest_waiting_entry_is_matched_first(db_session: AsyncSession, publisher):
    alice = await make_user(db_session, "Alice")
    bob = await make_user(db_session, "Bob")
    carol = await make_user(db_session, "Carol")
    await make_waiting(db_session, bob, T0 + timedelta(minutes=5))
    await make_waiting(db_session, alice, T0)

    response = await queue_service.book_call(db_session, publisher, carol.id)

    assert response.state == "matched"
    assert response.partner.id == alice.id


@pytest.mark.asyncio
async def test_arrival_order_breaks_created_at_ties(db_session: AsyncSession, publisher):
    alice = await make_user(db_session, "Alice")
    bob = await make_user(db_session, "Bob")
    carol = await make_user(db_session, "Carol")
    await make_waiting(db_session, bob, T0)
    await make_waiting(db_session, alice, T0)

    response = await queue_service.book_call(db_session, publisher, carol.id)

    assert response.partner.id == bob.id


@pytest.mark.asyncio
async def test_pairing_is_symmetric(db_session: AsyncSession, publisher):
    alice = await make_user(db_session, "Alice")
    bob = await make_user(db_session, "Bob")
    await make_waiting(db_session, alice, T0)

    await queue_service.book_call(db_session, publisher, bob.id)

    alice_entry = await entry_for(db_session, alice)
    bob_entry = await entry_for(db_session, bob)
    assert alice_entry.status == bob_entry.status == "matched"
    assert alice_entry.matched_with_id == bob.id
    assert bob_entry.matched_with_id == alice.id

    counts = await queue_service.get_match_counts(db_session, alice.id)
    assert counts == {bob.id: 1}
    counts = await queue_service.get_match_counts(db_session, bob.id)
    assert counts == {alice.id: 1}


@pytest.mark.asyncio
async def test_store_failure_rolls_back_the_whole_match(
    db_session: AsyncSession, publisher, monkeypatch
):
    alice = await make_user(db_session, "Alice")
    bob = await make_user(db_session, "Bob")
    alice_id, bob_id = alice.id, bob.id
    await make_waiting(db_session, alice, T0)

    async def broken_record(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(queue_service, "_record_pairing", broken_record)

    with pytest.raises(RuntimeError):
        await queue_service.book_call(db_session, publisher, bob_id)

    # Rollback expires loaded objects, so only plain ids are used from here
    alice_entry = await queue_service.get_queue_entry(db_session, alice_id)
    assert alice_entry.status == "waiting"
    assert alice_entry.matched_with_id is None
    assert await queue_service.get_queue_entry(db_session, bob_id) is None
    history = await db_session.execute(select(MatchHistory))
    assert history.scalars().all() == []
    assert publisher.events == []


@pytest.mark.asyncio
async def test_publish_failure_does_not_fail_booking(db_session: AsyncSession):
    alice = await make_user(db_session, "Alice")
    bob = await make_user(db_session, "Bob")
    await make_waiting(db_session, alice, T0)

    response = await queue_service.book_call(db_session, FailingPublisher(), bob.id)

    assert response.state == "matched"
    assert (await entry_for(db_session, bob)).status == "matched"


@pytest.mark.asyncio
async def test_unknown_user_cannot_book(db_session: AsyncSession, publisher):
    from app.core.exceptions import NotFoundError

    with pytest.raises(NotFoundError):
        await queue_service.book_call(db_session, publisher, uuid.uuid4())


@pytest.mark.asyncio
async def test_idle_entry_is_replaced_on_booking(db_session: AsyncSession, publisher):
    alice = await make_user(db_session, "Alice")
    db_session.add(QueueEntry(user_id=alice.id, status=QueueStatus.idle.value))
    await db_session.commit()

    response = await queue_service.book_call(db_session, publisher, alice.id)

    assert response.state == "waiting"
    assert (await entry_for(db_session, alice)).status == "waiting"
    assert publisher.named(QueueEvent.QUEUE_UPDATED)[-1][2] == {"state": "waiting"}


@pytest.mark.asyncio
async def test_exclusion_policies(db_session: AsyncSession):
    alice = await make_user(db_session, "Alice")
    bob = await make_user(db_session, "Bob")
    carol = await make_user(db_session, "Carol")
    now = datetime.now(timezone.utc)
    db_session.add_all(
        [
            MatchHistory(user_id=alice.id, partner_id=bob.id, last_matched_at=now - timedelta(days=2)),
            MatchHistory(user_id=alice.id, partner_id=carol.id, last_matched_at=now - timedelta(days=60)),
        ]
    )
    await db_session.commit()

    history = await queue_service.get_excluded_partner_ids(db_session, alice.id, policy="history")
    cooldown = await queue_service.get_excluded_partner_ids(
        db_session, alice.id, policy="cooldown", cooldown_days=30
    )
    nobody = await queue_service.get_excluded_partner_ids(db_session, alice.id, policy="none")

    assert history == {bob.id, carol.id}
    assert cooldown == {bob.id}
    assert nobody == set()

    with pytest.raises(ValueError):
        await queue_service.get_excluded_partner_ids(db_session, alice.id, policy="sometimes")


@pytest.mark.asyncio
async def test_excluded_users_are_skipped_for_next_in_line(db_session: AsyncSession, publisher):
    alice = await make_user(db_session, "Alice")
    bob = await make_user(db_session, "Bob")
    carol = await make_user(db_session, "Carol")
    await make_waiting(db_session, bob, T0)
    await make_waiting(db_session, carol, T0 + timedelta(minutes=1))
    db_session.add(MatchHistory(user_id=alice.id, partner_id=bob.id, last_matched_at=T0))
    await db_session.commit()

    response = await queue_service.book_call(db_session, publisher, alice.id)

    assert response.partner.id == carol.id
    assert (await entry_for(db_session, bob)).status == "waiting"


@pytest.mark.asyncio
async def test_unrelated_integrity_error_is_not_reported_as_already_active(
    db_session: AsyncSession, publisher, monkeypatch
):
    alice = await make_user(db_session, "Alice")
    bob = await make_user(db_session, "Bob")
    bob_id = bob.id
    await make_waiting(db_session, alice, T0)

    async def broken_record(*args, **kwargs):
        raise IntegrityError("INSERT INTO match_history", {}, Exception("foreign key"))

    monkeypatch.setattr(queue_service, "_record_pairing", broken_record)

    with pytest.raises(IntegrityError):
        await queue_service.book_call(db_session, publisher, bob_id)

    assert await queue_service.get_queue_entry(db_session, bob_id) is None


@pytest.mark.asyncio
async def test_concurrent_insert_of_own_entry_is_already_active(
    db_session: AsyncSession, publisher, monkeypatch
):
    alice = await make_user(db_session, "Alice")
    alice_id = alice.id
    await make_waiting(db_session, alice, T0)

    # The first lookup misses the entry, as if another request inserted it meanwhile
    real_get_queue_entry = queue_service.get_queue_entry
    calls = []

    async def stale_first_lookup(db, user_id):
        calls.append(user_id)
        if len(calls) == 1:
            return None
        return await real_get_queue_entry(db, user_id)

    monkeypatch.setattr(queue_service, "get_queue_entry", stale_first_lookup)

    with pytest.raises(AlreadyActiveError) as exc_info:
        await queue_service.book_call(db_session, publisher, alice_id)

    assert exc_info.value.metadata["status"] == "waiting"
    assert publisher.events == []


@pytest.mark.asyncio
@pytest.mark.skipif(
    not os.environ.get("TEST_DATABASE_URL", "").startswith("postgresql"),
    reason="needs a database with real row locking",
)
async def test_concurrent_bookings_claim_the_waiting_user_once(
    session_maker, db_session: AsyncSession, publisher
):
    alice = await make_user(db_session, "Alice")
    bob = await make_user(db_session, "Bob")
    carol = await make_user(db_session, "Carol")
    await make_waiting(db_session, alice, T0)

    async def book(user_id):
        async with session_maker() as session:
            return await queue_service.book_call(session, publisher, user_id)

    results = await asyncio.gather(book(bob.id), book(carol.id))

    states = sorted(r.state for r in results)
    assert states == ["matched", "waiting"]
    winner = bob if results[0].state == "matched" else carol
    assert next(r for r in results if r.state == "matched").partner.id == alice.id

    alice_entry = await queue_service.get_queue_entry(db_session, alice.id)
    assert alice_entry.status == "matched"
    assert alice_entry.matched_with_id == winner.id
    history = await db_session.execute(
        select(MatchHistory).where(MatchHistory.user_id == alice.id)
    )
    assert [row.partner_id for row in history.scalars().all()] == [winner.id]
