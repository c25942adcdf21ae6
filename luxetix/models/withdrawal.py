import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional
from decimal import Decimal

from sqlalchemy import String, ForeignKey, Text, Numeric, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from luxetix.database import Base
from luxetix.db_types import UUIDType, UTCDateTime, utc_now

if TYPE_CHECKING:
    from luxetix.models.agent import Agent


class WithdrawalStatus(str, Enum):
    """Withdrawal request status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"


# Allowed transitions; completed and rejected are terminal
WITHDRAWAL_TRANSITIONS = {
    WithdrawalStatus.PENDING.value: {
        WithdrawalStatus.PROCESSING.value,
        WithdrawalStatus.COMPLETED.value,
        WithdrawalStatus.REJECTED.value,
    },
    WithdrawalStatus.PROCESSING.value: {
        WithdrawalStatus.COMPLETED.value,
        WithdrawalStatus.REJECTED.value,
    },
    WithdrawalStatus.COMPLETED.value: set(),
    WithdrawalStatus.REJECTED.value: set(),
}


class Withdrawal(Base):
    """
    Agent cash-out request.
    Bank fields are a snapshot of the agent's details at request time.
    """
    __tablename__ = "withdrawals"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_withdrawals_amount_positive"),
        Index('ix_withdrawal_agent_status', 'agent_id', 'status'),
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

    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    # Bank snapshot
    bank_name: Mapped[str] = mapped_column(String(100), nullable=False)
    bank_account_number: Mapped[str] = mapped_column(String(50), nullable=False)
    bank_account_name: Mapped[str] = mapped_column(String(200), nullable=False)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=WithdrawalStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="pending, processing, completed, rejected"
    )
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False,
        index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    # Relationships
    agent: Mapped["Agent"] = relationship("Agent", back_populates="withdrawals")

    def __repr__(self) -> str:
        return f"<Withdrawal(amount={self.amount}, status='{self.status}')>"
