"""Agent (event organizer) models.

Supports:
- Agent profile with cumulative earnings and commission totals
- Paid registration applications, promoted to agents by an administrator
- Platform-wide agent settings (fee, limits, commission rate)
- Per-order settlement records owed to agents
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, ForeignKey, Index, Integer, Text, Numeric, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from luxetix.database import Base
from luxetix.db_types import UUIDType, JSONType, UTCDateTime, utc_now


class AgentStatus(str, Enum):
    """Agent registration status."""
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"


class RegistrationStatus(str, Enum):
    """Agent registration application status."""
    PENDING = "pending"   # Awaiting fee payment
    PAID = "paid"         # Fee received, awaiting promotion
    ACTIVE = "active"     # Promoted to an agent


class RegistrationPaymentMethod(str, Enum):
    """Payment channels accepted for the registration fee."""
    VA_BCA = "va_bca"
    VA_MANDIRI = "va_mandiri"
    VA_BNI = "va_bni"
    VA_BRI = "va_bri"
    QRIS = "qris"


class AgentPaymentStatus(str, Enum):
    """Settlement record status."""
    PENDING = "pending"
    PAID = "paid"


class Agent(Base):
    """
    Event organizer allowed to publish concerts and earn revenue.

    The withdrawable balance is derived from total_earnings,
    total_commission_paid and the withdrawal history; it is never stored.
    """
    __tablename__ = "agents"

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

    business_name: Mapped[str] = mapped_column(String(200), nullable=False)
    business_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    registration_status: Mapped[str] = mapped_column(
        String(20),
        default=AgentStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="pending, active, rejected"
    )
    registration_payment_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Event limits
    max_events: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    successful_events_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_auto_approve: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Cumulative ledger totals (IDR)
    total_earnings: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        default=Decimal("0"),
        nullable=False,
        comment="Gross revenue accrued from paid orders"
    )
    total_commission_paid: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        default=Decimal("0"),
        nullable=False,
        comment="Platform commission withheld from earnings"
    )

    # Bank details for withdrawals
    bank_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bank_account_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    bank_account_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    # Relationships
    withdrawals: Mapped[List["Withdrawal"]] = relationship(  # noqa: F821
        "Withdrawal",
        back_populates="agent",
        cascade="all, delete-orphan"
    )
    payments: Mapped[List["AgentPayment"]] = relationship(
        "AgentPayment",
        back_populates="agent",
        cascade="all, delete-orphan"
    )

    @property
    def is_active(self) -> bool:
        return self.registration_status == AgentStatus.ACTIVE.value

    @property
    def has_bank_details(self) -> bool:
        return bool(self.bank_name and self.bank_account_number)

    def __repr__(self) -> str:
        return f"<Agent(business_name='{self.business_name}', status='{self.registration_status}')>"


class AgentRegistration(Base):
    """
    Pending application to become an agent, paid through the gateway.
    Decoupled from Agent until promoted.
    """
    __tablename__ = "agent_registrations"

    # At most one open (pending or paid) registration per user
    __table_args__ = (
        Index(
            "uq_agent_registrations_open_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'paid')"),
            sqlite_where=text("status IN ('pending', 'paid')"),
        ),
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

    business_name: Mapped[str] = mapped_column(String(200), nullable=False)
    business_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bank_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bank_account_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    bank_account_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    registration_fee: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    payment_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    payment_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=RegistrationStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="pending, paid, active"
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    processed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False
    )

    @property
    def reference(self) -> str:
        """Merchant reference sent to the gateway."""
        return f"AGENT-REG-{self.id}"

    def __repr__(self) -> str:
        return f"<AgentRegistration(user_id='{self.user_id}', status='{self.status}')>"


class AgentSettings(Base):
    """Platform-wide agent program settings (single row)."""
    __tablename__ = "agent_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    registration_fee: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        default=Decimal("500000"),
        nullable=False
    )
    default_max_events: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    max_events_before_auto_approve: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    platform_commission_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        default=Decimal("10"),
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )


class AgentPayment(Base):
    """
    Settlement owed to an agent for one paid order.
    gross = commission + net.
    """
    __tablename__ = "agent_payments"
    __table_args__ = (
        UniqueConstraint("agent_id", "order_id", name="uq_agent_payments_agent_order"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    agent_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    gross_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=AgentPaymentStatus.PENDING.value,
        nullable=False,
        comment="pending, paid"
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False
    )

    # Relationships
    agent: Mapped["Agent"] = relationship("Agent", back_populates="payments")
