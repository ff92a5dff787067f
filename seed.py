"""Seed script — populates the database with sample accounts for testing."""

import asyncio

from sqlalchemy.ext.asyncio import AsyncSession

from connectapp.auth.passwords import hash_password
from connectapp.config import settings
from connectapp.database.engine import build_engine, build_session_factory, init_db
from connectapp.models.user import Role, User, UserType

SAMPLE_PASSWORD = "Connect@123"


def sample_users() -> list[User]:
    password_hash = hash_password(SAMPLE_PASSWORD)
    return [
        User(
            name="Site Admin",
            email="admin@connectapp.in",
            phone="+919000000001",
            password_hash=password_hash,
            role=Role.ADMIN,
            user_type=UserType.BUYER,
            is_verified=True,
        ),
        User(
            name="Asha Buyer",
            email="asha@example.com",
            phone="+919876543210",
            password_hash=password_hash,
            role=Role.USER,
            user_type=UserType.BUYER,
            is_verified=True,
        ),
        User(
            name="Ravi Electricals",
            email="ravi@example.com",
            phone="+919812345678",
            password_hash=password_hash,
            role=Role.SELLER,
            user_type=UserType.SELLER,
            is_verified=True,
        ),
        User(
            name="Nimbus Hiring",
            email="jobs@nimbus.example.com",
            phone="+918800112233",
            password_hash=password_hash,
            role=Role.USER,
            user_type=UserType.EMPLOYER,
            is_verified=True,
        ),
    ]


async def seed() -> None:
    """Insert sample accounts into the database."""
    engine = build_engine(settings.database_url)
    await init_db(engine)
    users = sample_users()
    async with build_session_factory(engine)() as session:
        session: AsyncSession
        session.add_all(users)
        await session.commit()
    await engine.dispose()
    print(f"✅ Seeded {len(users)} users into the database (password: {SAMPLE_PASSWORD}).")


if __name__ == "__main__":
    asyncio.run(seed())
