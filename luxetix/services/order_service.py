"""
Order & Inventory Writer.

Creates pending ticket orders and reserves inventory in one transaction.
Inventory is reserved with a quantity-bounded conditional UPDATE and
released when a pending order is cancelled or expires.

Order status only moves forward (pending -> paid | cancelled | expired);
every transition is a compare-and-swap on status = 'pending'.
"""
import logging
import secrets
import string
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import select, update
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from luxetix.config import Settings
from luxetix.db_types import utc_now
from luxetix.models.concert import TicketType
from luxetix.models.order import Order, OrderItem, OrderStatus

if TYPE_CHECKING:
    from luxetix.schemas.checkout import CheckoutOrderCreate

logger = logging.getLogger(__name__)

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


class CheckoutError(Exception):
    """Checkout could not be completed."""
    def __init__(self, message: str, status_code: int = 400, retryable: bool = False):
        self.message = message
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(self.message)


def generate_order_number(now: Optional[datetime] = None) -> str:
    """Generate order number: LTX-YYYYMMDD-XXXXXXXX"""
    now = now or utc_now()
    suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(8))
    return f"LTX-{now.strftime('%Y%m%d')}-{suffix}"


async def transition_pending_order(
    db: AsyncSession,
    order_id: uuid.UUID,
    new_status: OrderStatus,
    **values
) -> bool:
    """
    Move a pending order to new_status.

    Single conditional UPDATE ... WHERE status = 'pending'. Returns False
    when the order does not exist or has already left pending.
    """
    stmt = (
        update(Order)
        .where(Order.id == order_id, Order.status == OrderStatus.PENDING.value)
        .values(status=new_status.value, updated_at=utc_now(), **values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


async def release_inventory(db: AsyncSession, items: List[OrderItem]) -> int:
    """
    Return reserved tickets to their ticket types.

    Bounded by total_quantity so a double release can never push
    available_quantity past capacity. Returns the number of tickets restored.
    """
    restored = 0
    for item in items:
        if not item.ticket_type_id:
            continue
        stmt = (
            update(TicketType)
            .where(
                TicketType.id == item.ticket_type_id,
                TicketType.available_quantity + item.quantity <= TicketType.total_quantity,
            )
            .values(available_quantity=TicketType.available_quantity + item.quantity)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if result.rowcount == 1:
            restored += item.quantity
        else:
            logger.warning(
                f"Could not restore {item.quantity} tickets to ticket type {item.ticket_type_id}: "
                f"capacity already reached"
            )
    return restored


class OrderService:
    """Service for ticket orders and inventory reservation."""

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings

    async def get_order(self, order_id: uuid.UUID) -> Optional[Order]:
        """Get order with items, always reading current database state."""
        stmt = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_order(
        self,
        data: "CheckoutOrderCreate",
        user_id: Optional[uuid.UUID] = None
    ) -> Order:
        """
        Create a pending order with exactly one item.

        Quantity is clamped to the tickets still available. The order, its
        item and the inventory reservation are committed together or not at all.
        """
        ticket_type = await self._get_ticket_type(data.concert_id, data.ticket_type_id)
        if not ticket_type:
            raise CheckoutError("Ticket type not found for this concert", status_code=404)

        available = ticket_type.available_quantity
        if available <= 0:
            raise CheckoutError("Tickets are sold out", status_code=409)

        quantity = min(data.quantity, available)
        if quantity < data.quantity:
            logger.info(
                f"Clamped quantity for ticket type {ticket_type.id} from {data.quantity} to {quantity}"
            )

        unit_price = Decimal(ticket_type.price)
        subtotal = unit_price * quantity
        now = utc_now()

        try:
            reserved = await self._reserve_inventory(ticket_type.id, quantity)
            if not reserved:
                await self.db.rollback()
                raise CheckoutError(
                    "Tickets were just taken by another buyer, please try again",
                    status_code=409,
                    retryable=True,
                )

            order = Order(
                order_number=generate_order_number(now),
                user_id=user_id,
                status=OrderStatus.PENDING.value,
                total_amount=subtotal,
                customer_name=data.customer_name,
                customer_email=data.customer_email,
                customer_phone=data.customer_phone,
                expires_at=now + timedelta(minutes=self.settings.TICKET_PAYMENT_EXPIRY_MINUTES),
            )
            self.db.add(order)
            await self.db.flush()

            item = OrderItem(
                order_id=order.id,
                ticket_type_id=ticket_type.id,
                concert_id=ticket_type.concert_id,
                quantity=quantity,
                unit_price=unit_price,
                subtotal=subtotal,
            )
            self.db.add(item)

            await self.db.commit()

        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error creating order: {e}")
            raise CheckoutError(
                "Checkout failed, please try again",
                status_code=503,
                retryable=True,
            )

        logger.info(
            f"Order {order.order_number} created: {quantity} x {ticket_type.name} = {subtotal}"
        )
        return await self.get_order(order.id)

    async def get_order_for_user(
        self,
        order_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None
    ) -> Order:
        """
        Order as seen by a buyer.

        An order placed while signed in is only visible to its owner. Guest
        orders are read by id alone.
        """
        order = await self.get_order(order_id)
        if not order:
            raise CheckoutError("Order not found", status_code=404)
        if order.user_id and order.user_id != user_id:
            raise CheckoutError("You cannot view this order", status_code=403)
        return order

    async def cancel_order(
        self,
        order_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None
    ) -> Order:
        """Cancel a pending order and release its tickets."""
        order = await self.get_order(order_id)
        if not order:
            raise CheckoutError("Order not found", status_code=404)

        if order.user_id and order.user_id != user_id:
            raise CheckoutError("You cannot cancel this order", status_code=403)

        cancelled = await transition_pending_order(
            self.db, order.id, OrderStatus.CANCELLED, cancelled_at=utc_now()
        )
        if not cancelled:
            current = await self.get_order(order_id)
            raise CheckoutError(f"Order is already {current.status}", status_code=409)

        restored = await release_inventory(self.db, order.items)
        await self.db.commit()

        logger.info(f"Order {order.order_number} cancelled, {restored} tickets released")
        return await self.get_order(order_id)

    async def expire_order(self, order: Order) -> bool:
        """Mark a pending order expired and release its tickets. Caller commits."""
        expired = await transition_pending_order(self.db, order.id, OrderStatus.EXPIRED)
        if not expired:
            return False

        restored = await release_inventory(self.db, order.items)
        logger.info(f"Order {order.order_number} expired, {restored} tickets released")
        return True

    # ==================== HELPERS ====================

    async def _get_ticket_type(
        self,
        concert_id: uuid.UUID,
        ticket_type_id: uuid.UUID
    ) -> Optional[TicketType]:
        stmt = select(TicketType).where(
            TicketType.id == ticket_type_id,
            TicketType.concert_id == concert_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _reserve_inventory(self, ticket_type_id: uuid.UUID, quantity: int) -> bool:
        """available_quantity -= quantity, only if enough remain."""
        stmt = (
            update(TicketType)
            .where(
                TicketType.id == ticket_type_id,
                TicketType.available_quantity >= quantity,
            )
            .values(available_quantity=TicketType.available_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1
