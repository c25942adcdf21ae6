"""Agent registration, balance and settlement schemas."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field

from luxetix.models.agent import RegistrationPaymentMethod
from luxetix.schemas.base import BaseCreateSchema, BaseResponseSchema, ItemList


class AgentSettingsResponse(BaseModel):
    """Agent program terms shown before registering."""
    registration_fee: Decimal
    default_max_events: int
    max_events_before_auto_approve: int
    platform_commission_percent: Decimal


class AgentRegistrationCreate(BaseCreateSchema):
    """Request to register as an agent."""
    business_name: str = Field(..., min_length=1, max_length=200)
    business_description: Optional[str] = Field(None, max_length=2000)
    bank_name: Optional[str] = Field(None, max_length=100)
    bank_account_number: Optional[str] = Field(None, max_length=50)
    bank_account_name: Optional[str] = Field(None, max_length=200)
    payment_method: RegistrationPaymentMethod = RegistrationPaymentMethod.VA_BCA


class AgentRegistrationResponse(BaseResponseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    business_name: str
    business_description: Optional[str] = None
    bank_name: Optional[str] = None
    bank_account_number: Optional[str] = None
    bank_account_name: Optional[str] = None
    registration_fee: Decimal
    payment_method: Optional[str] = None
    payment_id: Optional[str] = None
    payment_data: Optional[Dict[str, Any]] = None
    expires_at: Optional[datetime] = None
    status: str
    processed_at: Optional[datetime] = None
    created_at: datetime


class AgentResponse(BaseResponseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    business_name: str
    business_description: Optional[str] = None
    registration_status: str
    max_events: int
    successful_events_count: int
    is_auto_approve: bool
    total_earnings: Decimal
    total_commission_paid: Decimal
    bank_name: Optional[str] = None
    bank_account_number: Optional[str] = None
    bank_account_name: Optional[str] = None
    created_at: datetime


class RegistrationStatusResponse(BaseModel):
    """Latest registration of the user and their agent row, if any."""
    registration: Optional[AgentRegistrationResponse] = None
    agent: Optional[AgentResponse] = None


class RegistrationWebhookAck(BaseModel):
    success: bool = True
    message: str = "OK"
    registration_id: Optional[uuid.UUID] = None


class BalanceResponse(BaseModel):
    """Derived agent balance."""
    total_earnings: Decimal
    total_commission: Decimal
    net_earnings: Decimal
    pending_withdrawals: Decimal
    completed_withdrawals: Decimal
    available_balance: Decimal
    min_withdrawal_amount: Decimal


class AgentPaymentResponse(BaseResponseSchema):
    id: uuid.UUID
    agent_id: uuid.UUID
    order_id: Optional[uuid.UUID] = None
    gross_amount: Decimal
    commission_amount: Decimal
    net_amount: Decimal
    status: str
    paid_at: Optional[datetime] = None
    created_at: datetime


class AgentPaymentListResponse(ItemList[AgentPaymentResponse]):
    pass
