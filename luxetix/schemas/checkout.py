"""Checkout schemas: order creation, lookup and cancellation."""
import re
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any

from pydantic import EmailStr, Field, field_validator

from luxetix.schemas.base import BaseCreateSchema, BaseResponseSchema

# Separators tolerated in phone numbers; what remains must be 10-15 digits
PHONE_SEPARATORS = re.compile(r"[\s\-]")
PHONE_DIGITS = re.compile(r"^\d{10,15}$")


def normalize_phone(value: str) -> str:
    """Strip spaces, dashes and a leading '+' then require 10-15 digits."""
    stripped = PHONE_SEPARATORS.sub("", value or "")
    digits = stripped[1:] if stripped.startswith("+") else stripped
    if not PHONE_DIGITS.match(digits):
        raise ValueError("Phone number must contain 10-15 digits")
    return stripped


class BuyerContact(BaseCreateSchema):
    """Buyer contact details shared by checkout and payment requests."""
    customer_name: str = Field(..., min_length=1, max_length=100, description="Buyer full name")
    customer_email: EmailStr = Field(..., description="Buyer email, at most 255 characters")
    customer_phone: str = Field(..., description="Buyer phone, 10-15 digits")

    @field_validator('customer_name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator('customer_email')
    @classmethod
    def validate_email_length(cls, v: str) -> str:
        if len(v) > 255:
            raise ValueError("Email must be at most 255 characters")
        return v

    @field_validator('customer_phone')
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return normalize_phone(v)


class CheckoutOrderCreate(BuyerContact):
    """Request to create a pending ticket order."""
    concert_id: uuid.UUID
    ticket_type_id: uuid.UUID
    quantity: int = Field(..., ge=1, le=100, description="Requested ticket count")


class OrderItemResponse(BaseResponseSchema):
    """Order line item; ticket_code is only set once the order is paid."""
    id: uuid.UUID
    ticket_type_id: Optional[uuid.UUID] = None
    concert_id: Optional[uuid.UUID] = None
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    ticket_code: Optional[str] = None
    is_used: bool = False
    used_at: Optional[datetime] = None


class OrderResponse(BaseResponseSchema):
    """Order with its items."""
    id: uuid.UUID
    order_number: str
    user_id: Optional[uuid.UUID] = None
    status: str
    total_amount: Decimal
    customer_name: str
    customer_email: str
    customer_phone: str
    payment_method: Optional[str] = None
    payment_id: Optional[str] = None
    payment_data: Optional[Dict[str, Any]] = None
    expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    items: List[OrderItemResponse] = []
