from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient

from app.core.events import QueueEvent

DATE_A = "2030-01-10T10:00:00Z"
DATE_B = "2030-01-11T18:30:00Z"


async def create_user(client: AsyncClient, email: str, name: str) -> tuple[dict, str]:
    """Register and log in a user. Returns (auth headers, user id)."""
    response = await client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": "testpassword123", "name": name},
    )
    user_id = response.json()["id"]

    response = await client.post(
        "/api/v1/auth/login",
        data={"username": email, "password": "testpassword123"},
    )
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}, user_id


@pytest_asyncio.fixture
async def matched_pair(client: AsyncClient):
    """Alice waits, Bob books and is matched with her."""
    alice, alice_id = await create_user(client, "alice@example.com", "Alice")
    bob, bob_id = await create_user(client, "bob@example.com", "Bob")
    await client.post("/api/v1/queue/book", headers=alice)
    await client.post("/api/v1/queue/book", headers=bob)
    return {"alice": alice, "alice_id": alice_id, "bob": bob, "bob_id": bob_id}


async def propose(client: AsyncClient, headers: dict, date: str):
    return await client.post(
        "/api/v1/appointments/propose",
        json={"proposed_date": date},
        headers=headers,
    )


def parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.mark.asyncio
async def test_propose_without_match(client: AsyncClient):
    headers, _ = await create_user(client, "alice@example.com", "Alice")

    response = await propose(client, headers, DATE_A)

    assert response.status_code == 409
    assert response.json()["code"] == "MATCH_NOT_ACTIVE"


@pytest.mark.asyncio
async def test_propose_while_waiting(client: AsyncClient):
    headers, _ = await create_user(client, "alice@example.com", "Alice")
    await client.post("/api/v1/queue/book", headers=headers)

    response = await propose(client, headers, DATE_A)

    assert response.status_code == 409
    assert response.json()["code"] == "MATCH_NOT_ACTIVE"


@pytest.mark.asyncio
async def test_propose_invalid_date(client: AsyncClient, matched_pair: dict):
    response = await propose(client, matched_pair["alice"], "next tuesday")

    assert response.status_code == 422
    data = response.json()
    assert data["code"] == "VALIDATION_INVALID_DATE"
    assert data["field"] == "proposed_date"

    status = await client.get("/api/v1/appointments/status", headers=matched_pair["alice"])
    assert status.json()["my_proposed_date"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [12345, None, ["2030-01-10"]])
async def test_propose_non_string_date(client: AsyncClient, matched_pair: dict, value):
    response = await client.post(
        "/api/v1/appointments/propose",
        json={"proposed_date": value},
        headers=matched_pair["alice"],
    )

    assert response.status_code == 422
    data = response.json()
    assert data["code"] == "VALIDATION_INVALID_DATE"
    assert data["field"] == "proposed_date"


@pytest.mark.asyncio
async def test_first_proposal_waits_on_partner(client: AsyncClient, matched_pair: dict, publisher):
    response = await propose(client, matched_pair["alice"], DATE_A)

    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "matched"
    assert parse(data["my_proposed_date"]) == parse(DATE_A)
    assert data["their_proposed_date"] is None
    assert data["appointment"] is None

    bob_view = (await client.get("/api/v1/appointments/status", headers=matched_pair["bob"])).json()
    assert bob_view["status"] == "matched"
    assert bob_view["partner_id"] == matched_pair["alice_id"]
    assert bob_view["my_proposed_date"] is None
    assert parse(bob_view["their_proposed_date"]) == parse(DATE_A)

    ids, _, payload = publisher.named(QueueEvent.DATE_PROPOSED)[-1]
    assert ids == {matched_pair["alice_id"], matched_pair["bob_id"]}
    assert str(payload["proposed_by"]) == matched_pair["alice_id"]


@pytest.mark.asyncio
async def test_same_date_books_appointment(client: AsyncClient, matched_pair: dict, publisher):
    await propose(client, matched_pair["alice"], DATE_A)

    response = await propose(client, matched_pair["bob"], DATE_A)

    data = response.json()
    assert data["state"] == "booked"
    assert parse(data["appointment"]) == parse(DATE_A)

    for side in ("alice", "bob"):
        status = (await client.get("/api/v1/appointments/status", headers=matched_pair[side])).json()
        assert status["status"] == "booked"
        assert parse(status["confirmed_appointment"]) == parse(DATE_A)

    booked = publisher.named(QueueEvent.APPOINTMENT_BOOKED)
    assert len(booked) == 1
    assert booked[0][0] == {matched_pair["alice_id"], matched_pair["bob_id"]}


@pytest.mark.asyncio
async def test_same_instant_in_different_offsets_books(client: AsyncClient, matched_pair: dict):
    await propose(client, matched_pair["alice"], "2030-01-10T12:00:00+02:00")

    response = await propose(client, matched_pair["bob"], "2030-01-10T10:00:00Z")

    assert response.json()["state"] == "booked"
    assert parse(response.json()["appointment"]) == datetime(2030, 1, 10, 10, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_different_dates_keep_both_proposals(client: AsyncClient, matched_pair: dict):
    await propose(client, matched_pair["alice"], DATE_A)

    response = await propose(client, matched_pair["bob"], DATE_B)

    data = response.json()
    assert data["state"] == "matched"
    assert parse(data["my_proposed_date"]) == parse(DATE_B)
    assert parse(data["their_proposed_date"]) == parse(DATE_A)

    alice_view = (await client.get("/api/v1/appointments/status", headers=matched_pair["alice"])).json()
    assert alice_view["status"] == "matched"
    assert parse(alice_view["my_proposed_date"]) == parse(DATE_A)
    assert parse(alice_view["their_proposed_date"]) == parse(DATE_B)


@pytest.mark.asyncio
async def test_latest_proposal_replaces_previous(client: AsyncClient, matched_pair: dict):
    await propose(client, matched_pair["alice"], DATE_A)
    await propose(client, matched_pair["bob"], DATE_B)

    response = await propose(client, matched_pair["alice"], DATE_B)

    assert response.json()["state"] == "booked"
    assert parse(response.json()["appointment"]) == parse(DATE_B)


@pytest.mark.asyncio
async def test_repropose_after_booking(client: AsyncClient, matched_pair: dict):
    await propose(client, matched_pair["alice"], DATE_A)
    await propose(client, matched_pair["bob"], DATE_A)

    same = await propose(client, matched_pair["alice"], DATE_A)
    assert same.status_code == 200
    assert same.json()["state"] == "booked"

    different = await propose(client, matched_pair["alice"], DATE_B)
    assert different.status_code == 409
    assert different.json()["code"] == "APPOINTMENT_ALREADY_BOOKED"

    status = (await client.get("/api/v1/appointments/status", headers=matched_pair["alice"])).json()
    assert status["status"] == "booked"
    assert parse(status["confirmed_appointment"]) == parse(DATE_A)


@pytest.mark.asyncio
async def test_skip_releases_partner_to_idle(client: AsyncClient, matched_pair: dict, publisher):
    await propose(client, matched_pair["alice"], DATE_A)
    await propose(client, matched_pair["bob"], DATE_B)

    response = await client.post("/api/v1/appointments/skip", headers=matched_pair["alice"])

    assert response.status_code == 200
    assert response.json()["state"] == "idle"

    alice_status = (await client.get("/api/v1/queue/status", headers=matched_pair["alice"])).json()
    bob_status = (await client.get("/api/v1/queue/status", headers=matched_pair["bob"])).json()
    assert alice_status["status"] == "idle"
    assert bob_status["status"] == "idle"
    assert bob_status["partner_id"] is None

    bob_view = (await client.get("/api/v1/appointments/status", headers=matched_pair["bob"])).json()
    assert bob_view == {
        "status": "idle",
        "partner_id": None,
        "my_proposed_date": None,
        "their_proposed_date": None,
        "confirmed_appointment": None,
    }

    skipped = publisher.named(QueueEvent.APPOINTMENT_SKIPPED)
    assert skipped[0][0] == {matched_pair["alice_id"], matched_pair["bob_id"]}
    assert str(skipped[0][2]["skipped_by"]) == matched_pair["alice_id"]


@pytest.mark.asyncio
async def test_skipped_partner_can_book_again(client: AsyncClient, matched_pair: dict):
    await client.post("/api/v1/appointments/skip", headers=matched_pair["alice"])

    response = await client.post("/api/v1/queue/book", headers=matched_pair["bob"])

    assert response.status_code == 200
    assert response.json()["state"] == "waiting"


@pytest.mark.asyncio
async def test_skip_without_match(client: AsyncClient):
    headers, _ = await create_user(client, "alice@example.com", "Alice")

    response = await client.post("/api/v1/appointments/skip", headers=headers)

    assert response.status_code == 409
    assert response.json()["code"] == "MATCH_NOT_ACTIVE"


@pytest.mark.asyncio
async def test_confirm_removes_both_and_notifies_partner(
    client: AsyncClient, matched_pair: dict, publisher
):
    await propose(client, matched_pair["alice"], DATE_A)
    await propose(client, matched_pair["bob"], DATE_A)

    response = await client.post("/api/v1/appointments/confirm", headers=matched_pair["alice"])

    assert response.status_code == 200
    assert response.json()["state"] == "idle"

    for side in ("alice", "bob"):
        status = (await client.get("/api/v1/queue/status", headers=matched_pair[side])).json()
        assert status["status"] == "idle"

    notifications = (await client.get("/api/v1/notifications/", headers=matched_pair["bob"])).json()
    assert len(notifications) == 1
    assert notifications[0]["message"] == "Alice has confirmed the appointment."
    assert notifications[0]["type"] == "appointment_confirmation"
    assert notifications[0]["is_read"] is False

    alice_notifications = (
        await client.get("/api/v1/notifications/", headers=matched_pair["alice"])
    ).json()
    assert alice_notifications == []

    assert publisher.named(QueueEvent.APPOINTMENT_CONFIRMED)[0][0] == {
        matched_pair["alice_id"],
        matched_pair["bob_id"],
    }
    assert publisher.named(QueueEvent.NOTIFICATION)[0][0] == {matched_pair["bob_id"]}


@pytest.mark.asyncio
async def test_confirm_without_match(client: AsyncClient):
    headers, _ = await create_user(client, "alice@example.com", "Alice")

    response = await client.post("/api/v1/appointments/confirm", headers=headers)

    assert response.status_code == 409
    assert response.json()["code"] == "MATCH_NOT_ACTIVE"


@pytest.mark.asyncio
async def test_status_when_waiting(client: AsyncClient):
    headers, _ = await create_user(client, "alice@example.com", "Alice")
    await client.post("/api/v1/queue/book", headers=headers)

    response = await client.get("/api/v1/appointments/status", headers=headers)

    assert response.json()["status"] == "waiting"
    assert response.json()["partner_id"] is None
