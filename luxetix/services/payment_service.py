"""
Payment Service - Xendit Integration

Records payment intents on pending ticket orders:
- Validates the order can still be paid
- Creates the VA / e-wallet / QRIS intent through XenditClient
- Stores the normalized payment envelope on the order
"""

import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from luxetix.config import Settings
from luxetix.db_types import utc_now
from luxetix.models.order import Order, OrderStatus, PaymentMethod
from luxetix.services.xendit_client import XenditClient, PaymentIntent, PaymentGatewayError

if TYPE_CHECKING:
    from luxetix.schemas.payment import CreatePaymentIntentRequest

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """Payment intent request rejected before reaching the gateway."""
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


def to_e164(phone: str) -> str:
    """Indonesian mobile numbers: 08xx -> +628xx, 62xx -> +62xx."""
    digits = phone.lstrip("+")
    if phone.startswith("+"):
        return phone
    if digits.startswith("0"):
        return f"+62{digits[1:]}"
    return f"+{digits}"


class PaymentService:
    """
    Service for creating payment intents.

    Flow:
    1. Buyer creates a pending order (OrderService.create_order)
    2. create_payment_intent() - buyer picks VA / EWALLET / QRIS
    3. Buyer pays; Xendit calls the webhook (WebhookReconciler)
    """

    def __init__(self, db: AsyncSession, settings: Settings, gateway: Optional[XenditClient] = None):
        self.db = db
        self.settings = settings
        self.gateway = gateway or XenditClient(settings)

    async def create_payment_intent(
        self,
        order_id: uuid.UUID,
        request: "CreatePaymentIntentRequest"
    ) -> Order:
        """
        Create a payment intent for a pending order.

        The gateway is called before any write. If it fails no order
        mutation occurs and PaymentGatewayError propagates.
        """
        order = await self._get_order(order_id)
        if not order:
            raise PaymentError("Order not found", status_code=404)

        if order.status != OrderStatus.PENDING.value:
            raise PaymentError(f"Order is already {order.status}", status_code=409)

        if order.is_expired:
            raise PaymentError("Order has expired, please create a new order", status_code=409)

        if Decimal(request.amount) != Decimal(order.total_amount):
            raise PaymentError(
                f"Amount {request.amount} does not match order total {order.total_amount}",
                status_code=422,
            )

        expires_at = utc_now() + timedelta(minutes=self.settings.TICKET_PAYMENT_EXPIRY_MINUTES)
        reference = str(order.id)
        method = PaymentMethod(request.payment_method)

        try:
            if method == PaymentMethod.VA:
                intent = await self.gateway.create_virtual_account(
                    external_id=reference,
                    bank_code=request.bank_code.value,
                    name=request.customer_name,
                    expected_amount=order.total_amount,
                    expires_at=expires_at,
                )
            elif method == PaymentMethod.EWALLET:
                redirect_url = (
                    request.success_redirect_url
                    or f"{self.settings.FRONTEND_URL.rstrip('/')}/order-success/{order.id}"
                )
                intent = await self.gateway.create_ewallet_charge(
                    reference_id=reference,
                    ewallet_type=request.ewallet_type.value,
                    amount=order.total_amount,
                    mobile_number=to_e164(request.customer_phone),
                    success_redirect_url=redirect_url,
                )
            else:
                intent = await self.gateway.create_qr_code(
                    reference_id=reference,
                    amount=order.total_amount,
                    expires_at=expires_at,
                )
        except PaymentGatewayError as e:
            logger.error(f"Payment intent failed for order {order.order_number}: {e.message}")
            raise

        await self._record_intent(order, intent, expires_at)
        logger.info(
            f"Payment intent {intent.provider_id} ({intent.method}) recorded for order {order.order_number}"
        )
        return await self._get_order(order_id)

    async def _record_intent(self, order: Order, intent: PaymentIntent, expires_at: datetime) -> None:
        stmt = (
            update(Order)
            .where(Order.id == order.id, Order.status == OrderStatus.PENDING.value)
            .values(
                payment_method=intent.method,
                payment_id=intent.provider_id,
                expires_at=expires_at,
                payment_data=intent.to_payment_data(),
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            await self.db.rollback()
            logger.warning(
                f"Order {order.order_number} left pending before intent {intent.provider_id} was recorded"
            )
            raise PaymentError("Order is no longer pending", status_code=409)
        await self.db.commit()

    async def _get_order(self, order_id: uuid.UUID) -> Optional[Order]:
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
