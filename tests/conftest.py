import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from typing import Any, AsyncGenerator, Iterable
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from app.core.events import get_event_publisher
from app.database import Base, get_db
from app.main import app

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


class RecordingPublisher:
    """Collects published events instead of pushing them to sockets."""

    def __init__(self) -> None:
        self.events: list[tuple[set[str], str, dict[str, Any]]] = []

    async def publish(
        self,
        participant_ids: Iterable[UUID],
        event: str,
        payload: dict[str, Any],
    ) -> None:
        self.events.append(({str(pid) for pid in participant_ids}, event, payload))

    def named(self, event: str) -> list[tuple[set[str], str, dict[str, Any]]]:
        return [e for e in self.events if e[1] == event]

    def clear(self) -> None:
        self.events.clear()


@pytest_asyncio.fixture(scope="function")
async def session_maker() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    pool = StaticPool if TEST_DATABASE_URL.startswith("sqlite") else NullPool
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=pool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    publisher: RecordingPublisher,
) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_publisher] = lambda: publisher

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def registered_user(client: AsyncClient) -> dict:
    user_data = {
        "email": "test@example.com",
        "password": "testpassword123",
        "name": "Test User",
    }
    response = await client.post("/api/v1/auth/register", json=user_data)
    return {**user_data, "response": response.json()}


@pytest_asyncio.fixture
async def auth_token(client: AsyncClient, registered_user: dict) -> str:
    response = await client.post(
        "/api/v1/auth/login",
        data={
            "username": registered_user["email"],
            "password": registered_user["password"],
        },
    )
    return response.json()["access_token"]
