"""User repository — data access layer for account lookups."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from connectapp.models.user import Role, User, UserType


class UserRepository:
    """Encapsulates all database queries related to users."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: int) -> User | None:
        return await self._session.get(User, user_id)

    async def get_by_subject(self, subject_id: str) -> User | None:
        """Resolve the ``sub`` claim of a session credential to an account."""
        if not subject_id.isdigit():
            return None
        return await self.get(int(subject_id))

    async def find_by_email(self, email: str) -> User | None:
        """Look up a user by email (compared lower-cased)."""
        stmt = select(User).where(User.email == email.strip().lower())
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_phone(self, phone: str) -> User | None:
        """Look up a user by their phone number.

        The phone is expected in E.164 format (e.g. ``+919876543210``).
        """
        stmt = select(User).where(User.phone == phone)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_users(self, user_type: UserType | None = None) -> list[User]:
        """Return all accounts, newest first, optionally filtered by type."""
        stmt = select(User).order_by(User.created_at.desc(), User.id.desc())
        if user_type is not None:
            stmt = stmt.where(User.user_type == user_type)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def create(
        self,
        *,
        name: str,
        email: str,
        phone: str,
        password_hash: str | None,
        user_type: UserType = UserType.BUYER,
        role: Role = Role.USER,
        is_verified: bool = False,
    ) -> User:
        """Insert a new account and flush so its ``id`` is populated."""
        user = User(
            name=name,
            email=email.strip().lower(),
            phone=phone,
            password_hash=password_hash,
            user_type=user_type,
            role=role,
            is_verified=is_verified,
        )
        self._session.add(user)
        await self._session.flush()
        return user
