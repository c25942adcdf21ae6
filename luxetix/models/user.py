"""
Auth platform user tables.

Users themselves live in the auth platform; these tables hold the profile
and the role grants the payment core reads.
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from luxetix.database import Base
from luxetix.db_types import UUIDType, UTCDateTime, utc_now


class AppRole(str, Enum):
    """Application role names."""
    ADMIN = "admin"
    AGENT = "agent"
    USER = "user"


class Profile(Base):
    """Public profile of an authenticated user."""
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        unique=True,
        nullable=False,
        index=True
    )
    full_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False
    )


class UserRole(Base):
    """Role grant; a user may hold several roles."""
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        nullable=False,
        index=True
    )
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="admin, agent, user"
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False
    )
