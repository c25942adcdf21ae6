"""
Payment API endpoints for Xendit integration.

Handles:
- Payment intent creation (VA, e-wallet, QRIS) for pending orders
"""

import logging

from fastapi import APIRouter, HTTPException, status

from luxetix.api.deps import DB, SettingsDep, Gateway
from luxetix.schemas.payment import CreatePaymentIntentRequest, PaymentIntentResponse
from luxetix.services.payment_service import PaymentService, PaymentError
from luxetix.services.xendit_client import PaymentGatewayError

logger = logging.getLogger(__name__)


router = APIRouter(tags=["Payments"])


@router.post(
    "/create",
    response_model=PaymentIntentResponse,
    summary="Create a Xendit payment intent",
    description="Create a VA, e-wallet charge or QRIS code for a pending order."
)
async def create_payment_intent(
    data: CreatePaymentIntentRequest,
    db: DB,
    settings: SettingsDep,
    gateway: Gateway,
):
    """
    Create a payment intent for checkout.

    The order must be pending, unexpired, and the amount must equal the
    order total. On gateway failure the order is left untouched and the
    buyer should try again.
    """
    service = PaymentService(db, settings, gateway=gateway)

    try:
        order = await service.create_payment_intent(data.order_id, data)
    except PaymentError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except PaymentGatewayError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail=f"Failed to create payment, please try again: {e.message}"
        )

    payment_data = order.payment_data or {}
    return PaymentIntentResponse(
        order_id=order.id,
        payment_id=order.payment_id,
        payment_method=order.payment_method,
        payment_url=payment_data.get("payment_url") or payment_data.get("qr_string"),
        payment_data=payment_data,
        expires_at=order.expires_at,
    )
