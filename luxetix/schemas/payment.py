"""Payment schemas for Xendit payment intents and webhooks."""
from datetime import datetime
from pydantic import BaseModel, Field, model_validator
from typing import Optional, Dict, Any
import uuid

from luxetix.models.order import PaymentMethod
from luxetix.schemas.base import Rupiah
from luxetix.schemas.checkout import BuyerContact
from luxetix.services.xendit_client import VirtualAccountBank, EWalletBrand


class CreatePaymentIntentRequest(BuyerContact):
    """API request to create a payment intent for a pending order."""
    order_id: uuid.UUID = Field(..., description="Internal order ID")
    amount: Rupiah = Field(..., gt=0, description="Amount in IDR, must equal the order total")
    payment_method: PaymentMethod = Field(..., description="VA, EWALLET or QRIS")
    bank_code: Optional[VirtualAccountBank] = Field(None, description="VA bank (default BCA)")
    ewallet_type: Optional[EWalletBrand] = Field(None, description="E-wallet brand (default OVO)")
    success_redirect_url: Optional[str] = Field(None, description="E-wallet return URL override")

    @model_validator(mode='after')
    def apply_method_defaults(self):
        if self.payment_method == PaymentMethod.VA and self.bank_code is None:
            self.bank_code = VirtualAccountBank.BCA
        if self.payment_method == PaymentMethod.EWALLET and self.ewallet_type is None:
            self.ewallet_type = EWalletBrand.OVO
        return self


class PaymentIntentResponse(BaseModel):
    """Payment intent recorded on the order."""
    success: bool = True
    order_id: uuid.UUID
    payment_id: str
    payment_method: str
    payment_url: Optional[str] = None
    payment_data: Dict[str, Any]
    expires_at: Optional[datetime] = None


class WebhookAck(BaseModel):
    """Response returned to Xendit for every handled callback."""
    success: bool = True
    message: str = "OK"
