import uuid
from datetime import datetime, date
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Date, ForeignKey, Integer, Text, Numeric, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from luxetix.database import Base
from luxetix.db_types import UUIDType, UTCDateTime, utc_now

if TYPE_CHECKING:
    from luxetix.models.agent import Agent


class Concert(Base):
    """
    Concert listing. Only the columns the payment core reads are mapped;
    presentation fields (images, descriptions) live in the hosted schema.
    """
    __tablename__ = "concerts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    artist: Mapped[str] = mapped_column(String(200), nullable=False)
    venue: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    event_date: Mapped[Optional[date]] = mapped_column("date", Date, nullable=True)

    # Organizing agent (null for platform-run concerts)
    agent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("agents.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False
    )

    # Relationships
    agent: Mapped[Optional["Agent"]] = relationship("Agent")
    ticket_types: Mapped[List["TicketType"]] = relationship(
        "TicketType",
        back_populates="concert",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Concert(title='{self.title}', artist='{self.artist}')>"


class TicketType(Base):
    """
    Purchasable ticket tier for a concert.

    available_quantity is reserved at checkout and released when an order
    expires or is cancelled.
    """
    __tablename__ = "ticket_types"
    __table_args__ = (
        CheckConstraint("available_quantity >= 0", name="ck_ticket_types_available_non_negative"),
        CheckConstraint("available_quantity <= total_quantity", name="ck_ticket_types_available_le_total"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    concert_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("concerts.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False
    )

    # Relationships
    concert: Mapped["Concert"] = relationship("Concert", back_populates="ticket_types")

    def __repr__(self) -> str:
        return f"<TicketType(name='{self.name}', available={self.available_quantity}/{self.total_quantity})>"
