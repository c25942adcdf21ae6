"""
Ticket code issuance and validation.

Codes look like TKT-<epoch ms>-<6 uppercase alphanumerics> and are unique
across the whole system (unique constraint on order_items.ticket_code).
A code is written only where ticket_code IS NULL, so issuance can be
re-run any number of times without overwriting an existing code.
"""
import logging
import secrets
import string
import time
import uuid
from datetime import datetime
from decimal import Decimal
from dataclasses import dataclass
from typing import Optional, List

from sqlalchemy import select, update
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from luxetix.db_types import utc_now
from luxetix.models.concert import Concert, TicketType
from luxetix.models.order import Order, OrderItem, OrderStatus

logger = logging.getLogger(__name__)

TICKET_CODE_ALPHABET = string.ascii_uppercase + string.digits
TICKET_CODE_SUFFIX_LENGTH = 6
MAX_CODE_ATTEMPTS = 5


class TicketValidationError(Exception):
    """Ticket lookup or redemption failed."""
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


def generate_ticket_code() -> str:
    """Generate ticket code: TKT-<epoch ms>-<6 random uppercase alphanumerics>"""
    suffix = "".join(secrets.choice(TICKET_CODE_ALPHABET) for _ in range(TICKET_CODE_SUFFIX_LENGTH))
    return f"TKT-{int(time.time() * 1000)}-{suffix}"


@dataclass
class TicketInfo:
    """Ticket details shown at the venue gate."""
    ticket_code: str
    order_id: uuid.UUID
    order_number: str
    order_status: str
    customer_name: str
    customer_email: str
    quantity: int
    subtotal: Decimal
    is_used: bool
    used_at: Optional[datetime] = None
    concert_title: Optional[str] = None
    concert_date: Optional[str] = None
    venue: Optional[str] = None
    ticket_type_name: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.order_status == OrderStatus.PAID.value and not self.is_used


class TicketService:
    """Service for issuing and redeeming ticket codes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def issue_ticket_codes(self, order_id: uuid.UUID) -> List[str]:
        """
        Give every item of the order that lacks a code a fresh one.

        Returns the codes written by this call (empty when every item was
        already issued). Caller commits.
        """
        result = await self.db.execute(
            select(OrderItem.id).where(
                OrderItem.order_id == order_id,
                OrderItem.ticket_code.is_(None),
            )
        )
        item_ids = list(result.scalars().all())

        issued = []
        for item_id in item_ids:
            code = await self._unused_code()
            stmt = (
                update(OrderItem)
                .where(OrderItem.id == item_id, OrderItem.ticket_code.is_(None))
                .values(ticket_code=code)
                .execution_options(synchronize_session=False)
            )
            written = await self.db.execute(stmt)
            if written.rowcount == 1:
                issued.append(code)
            else:
                logger.info(f"Order item {item_id} already has a ticket code, skipped")

        if issued:
            logger.info(f"Issued {len(issued)} ticket codes for order {order_id}")
        return issued

    async def get_ticket(self, ticket_code: str) -> TicketInfo:
        """Look up a ticket by code."""
        item = await self._get_item(ticket_code)
        if not item:
            raise TicketValidationError("Ticket not found", status_code=404)
        return self._to_info(item)

    async def redeem_ticket(self, ticket_code: str, validated_by: uuid.UUID) -> TicketInfo:
        """
        Mark a ticket as used at the gate.

        Only tickets of paid orders can be redeemed, and only once.
        """
        item = await self._get_item(ticket_code)
        if not item:
            raise TicketValidationError("Ticket not found", status_code=404)

        if item.order.status != OrderStatus.PAID.value:
            raise TicketValidationError(
                f"Ticket is not valid: order is {item.order.status}", status_code=409
            )

        stmt = (
            update(OrderItem)
            .where(OrderItem.id == item.id, OrderItem.is_used.is_(False))
            .values(is_used=True, used_at=utc_now(), validated_by=validated_by)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            await self.db.rollback()
            raise TicketValidationError("Ticket has already been used", status_code=409)

        await self.db.commit()
        logger.info(f"Ticket {ticket_code} redeemed by {validated_by}")

        item = await self._get_item(ticket_code)
        return self._to_info(item)

    # ==================== HELPERS ====================

    async def _unused_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_ticket_code()
            existing = await self.db.execute(
                select(OrderItem.id).where(OrderItem.ticket_code == code)
            )
            if existing.scalar_one_or_none() is None:
                return code
            logger.warning(f"Ticket code collision on {code}, regenerating")
        raise RuntimeError("Could not generate a unique ticket code")

    async def _get_item(self, ticket_code: str) -> Optional[OrderItem]:
        stmt = (
            select(OrderItem)
            .options(
                selectinload(OrderItem.order),
                selectinload(OrderItem.concert),
                selectinload(OrderItem.ticket_type),
            )
            .where(OrderItem.ticket_code == ticket_code.strip().upper())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _to_info(item: OrderItem) -> TicketInfo:
        concert: Optional[Concert] = item.concert
        ticket_type: Optional[TicketType] = item.ticket_type
        return TicketInfo(
            ticket_code=item.ticket_code,
            order_id=item.order_id,
            order_number=item.order.order_number,
            order_status=item.order.status,
            customer_name=item.order.customer_name,
            customer_email=item.order.customer_email,
            quantity=item.quantity,
            subtotal=item.subtotal,
            is_used=item.is_used,
            used_at=item.used_at,
            concert_title=concert.title if concert else None,
            concert_date=concert.event_date.isoformat() if concert and concert.event_date else None,
            venue=concert.venue if concert else None,
            ticket_type_name=ticket_type.name if ticket_type else None,
        )
