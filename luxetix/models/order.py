import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, ForeignKey, Integer, Numeric, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from luxetix.database import Base
from luxetix.db_types import UUIDType, JSONType, UTCDateTime, utc_now

if TYPE_CHECKING:
    from luxetix.models.concert import Concert, TicketType


class OrderStatus(str, Enum):
    """Order status. pending is the only non-terminal state."""
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PaymentMethod(str, Enum):
    """Payment channel families offered at checkout."""
    VA = "VA"            # Closed single-use virtual account
    EWALLET = "EWALLET"  # One-time e-wallet charge
    QRIS = "QRIS"        # Dynamic QR code


TERMINAL_ORDER_STATUSES = {
    OrderStatus.PAID.value,
    OrderStatus.CANCELLED.value,
    OrderStatus.EXPIRED.value,
}


class Order(Base):
    """
    Ticket checkout transaction.
    Owned by a user, or by nobody for guest checkout.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_order_status_expires', 'status', 'expires_at'),
        Index('ix_order_user_created', 'user_id', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    order_number: Mapped[str] = mapped_column(
        String(40),
        unique=True,
        nullable=False,
        index=True
    )

    # Owner (null for guest checkout)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True,
        index=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=OrderStatus.PENDING.value,
        nullable=False,
        index=True,
        comment="pending, paid, cancelled, expired"
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        comment="Sum of item subtotals (IDR)"
    )

    # Buyer contact
    customer_name: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(20), nullable=False)

    # Payment
    payment_method: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="VA, EWALLET, QRIS"
    )
    payment_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Gateway reference of the latest payment intent"
    )
    payment_data: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Normalized payment envelope shown to the buyer"
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Timestamps
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
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan"
    )

    @property
    def is_pending(self) -> bool:
        return self.status == OrderStatus.PENDING.value

    @property
    def is_expired(self) -> bool:
        """True once the payment window has passed, even before the sweeper runs."""
        return self.expires_at is not None and self.expires_at <= utc_now()

    def __repr__(self) -> str:
        return f"<Order(order_number='{self.order_number}', status='{self.status}')>"


class OrderItem(Base):
    """
    Line item of an order for one ticket type.
    ticket_code is issued once, when the order is first paid.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    ticket_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("ticket_types.id", ondelete="SET NULL"),
        nullable=True
    )
    concert_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("concerts.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    # Redemption token
    ticket_code: Mapped[Optional[str]] = mapped_column(
        String(40),
        unique=True,
        nullable=True,
        index=True
    )
    is_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    validated_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False
    )

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="items")
    ticket_type: Mapped[Optional["TicketType"]] = relationship("TicketType")
    concert: Mapped[Optional["Concert"]] = relationship("Concert")

    def __repr__(self) -> str:
        return f"<OrderItem(order_id='{self.order_id}', quantity={self.quantity})>"
