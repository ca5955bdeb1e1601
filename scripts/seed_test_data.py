"""
Seed script to populate the database with demo users for development.
Some users are left waiting in the queue and some share match history,
so the queue and chat screens have something to show.
Run with: python scripts/seed_test_data.py [--users 40]
"""

import argparse
import asyncio
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

# Add parent directory to path so we can import app
sys.path.insert(0, str(Path(__file__).parent.parent))

from faker import Faker
from sqlalchemy import func, select

from app.core.security import hash_password
from app.database import async_session_maker
from app.models.match_history import MatchHistory
from app.models.queue_entry import QueueEntry, QueueStatus
from app.models.user import User

fake = Faker()

TEST_EMAIL_DOMAIN = "test.relate15.dev"
TEST_PASSWORD = "Test1234!"


async def seed_users(db, count: int) -> list[User]:
    """Create demo users sharing one password."""
    users = []
    password_hash = hash_password(TEST_PASSWORD)

    print(f"Creating {count} test users...")

    for i in range(count):
        user = User(
            id=uuid4(),
            email=f"user{i + 1}@{TEST_EMAIL_DOMAIN}",
            password_hash=password_hash,
            name=fake.first_name(),
            bio=fake.sentence(nb_words=12),
            created_at=datetime.now(timezone.utc) - timedelta(days=random.randint(1, 90)),
        )
        db.add(user)
        users.append(user)

    await db.flush()
    print(f"  Created {len(users)} users")
    return users


async def seed_match_history(db, users: list[User]) -> int:
    """Pair off the first half of the users, writing history both ways."""
    pairs = 0
    paired = users[: len(users) // 2]
    for a, b in zip(paired[::2], paired[1::2]):
        matched_at = datetime.now(timezone.utc) - timedelta(days=random.randint(1, 60))
        count = random.randint(1, 3)
        db.add(MatchHistory(user_id=a.id, partner_id=b.id, match_count=count, last_matched_at=matched_at))
        db.add(MatchHistory(user_id=b.id, partner_id=a.id, match_count=count, last_matched_at=matched_at))
        pairs += 1

    await db.flush()
    print(f"  Created history for {pairs} pairs")
    return pairs


async def seed_waiting_queue(db, users: list[User], count: int) -> list[QueueEntry]:
    """Put a few users in the queue, oldest first."""
    entries = []
    now = datetime.now(timezone.utc)
    for minutes_ago, user in zip(range(count, 0, -1), random.sample(users, count)):
        entry = QueueEntry(
            user_id=user.id,
            status=QueueStatus.waiting.value,
            created_at=now - timedelta(minutes=minutes_ago),
        )
        db.add(entry)
        entries.append(entry)

    await db.flush()
    print(f"  Queued {len(entries)} waiting users")
    return entries


async def main(num_users: int, num_waiting: int):
    print("=" * 50)
    print("Seeding test data for Relate15")
    print("=" * 50)

    async with async_session_maker() as db:
        try:
            count_result = await db.execute(
                select(func.count(User.id)).where(User.email.like(f"%@{TEST_EMAIL_DOMAIN}"))
            )
            existing_count = count_result.scalar() or 0

            if existing_count > 0:
                print(f"\nFound {existing_count} existing test users. Aborted.")
                return

            print("\nCreating test data...")

            users = await seed_users(db, num_users)
            pairs = await seed_match_history(db, users)
            waiting = await seed_waiting_queue(db, users, min(num_waiting, len(users)))

            await db.commit()

            print("\n" + "=" * 50)
            print("Summary:")
            print("=" * 50)
            print(f"  Users created: {len(users)}")
            print(f"  Pairs with history: {pairs}")
            print(f"  Waiting in queue: {len(waiting)}")
            print("\nTest user login:")
            print(f"  Email: user1@{TEST_EMAIL_DOMAIN}")
            print(f"  Password: {TEST_PASSWORD}")
            print("=" * 50)

        except Exception as e:
            print(f"\nError: {e}")
            await db.rollback()
            raise


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed demo users")
    parser.add_argument("--users", type=int, default=40, help="Number of users to create")
    parser.add_argument("--waiting", type=int, default=5, help="Users left waiting in the queue")
    args = parser.parse_args()
    asyncio.run(main(args.users, args.waiting))
