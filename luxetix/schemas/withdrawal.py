"""Withdrawal schemas."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from luxetix.models.withdrawal import WithdrawalStatus
from luxetix.schemas.base import BaseCreateSchema, BaseResponseSchema, ItemList, Rupiah


class WithdrawalCreate(BaseCreateSchema):
    """Agent cash-out request."""
    amount: Rupiah = Field(..., gt=0, description="Amount in IDR")
    notes: Optional[str] = Field(None, max_length=1000)


class WithdrawalProcess(BaseCreateSchema):
    """Admin decision on a withdrawal."""
    status: WithdrawalStatus
    admin_notes: Optional[str] = Field(None, max_length=1000)


class WithdrawalResponse(BaseResponseSchema):
    id: uuid.UUID
    agent_id: uuid.UUID
    amount: Decimal
    bank_name: str
    bank_account_number: str
    bank_account_name: str
    notes: Optional[str] = None
    status: str
    admin_notes: Optional[str] = None
    processed_by: Optional[uuid.UUID] = None
    processed_at: Optional[datetime] = None
    created_at: datetime


class WithdrawalListResponse(ItemList[WithdrawalResponse]):
    pass
