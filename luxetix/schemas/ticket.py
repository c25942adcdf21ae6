"""Ticket validation schemas."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from luxetix.schemas.base import BaseResponseSchema


class TicketResponse(BaseResponseSchema):
    """Ticket as seen at the venue gate."""
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
    is_valid: bool
    concert_title: Optional[str] = None
    concert_date: Optional[str] = None
    venue: Optional[str] = None
    ticket_type_name: Optional[str] = None
