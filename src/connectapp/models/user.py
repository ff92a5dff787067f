"""SQLAlchemy User model."""

import enum
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Enum, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


class Role(str, enum.Enum):
    """Authorization role embedded in session credentials."""

    USER = "USER"
    SELLER = "SELLER"
    ADMIN = "ADMIN"


class UserType(str, enum.Enum):
    """Marketplace account type, used to pick the landing dashboard."""

    BUYER = "BUYER"
    SELLER = "SELLER"
    EMPLOYER = "EMPLOYER"


class User(Base):
    """A marketplace account: buyer, seller/vendor, employer or admin.

    Accounts are addressed by email (password login) or by phone number
    (OTP login).  Phones are stored normalized to E.164.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    email: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    phone: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    password_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    role: Mapped[Role] = mapped_column(Enum(Role), nullable=False, default=Role.USER)
    user_type: Mapped[UserType] = mapped_column(
        Enum(UserType), nullable=False, default=UserType.BUYER
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("ix_users_phone", "phone"),
        Index("ix_users_email", "email"),
    )

    def to_public_dict(self) -> dict:
        """Serializable view of the account, never including the password hash."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role.value,
            "user_type": self.user_type.value,
            "is_active": self.is_active,
            "is_verified": self.is_verified,
        }

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role.value}>"
