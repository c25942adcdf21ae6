"""
Xendit Webhook Reconciler.

Xendit delivers callbacks at least once, in three shapes:
- Virtual Account: callback_virtual_account_id / external_id / owner_id
- E-wallet charge: data.reference_id / reference_id
- QRIS payment: qr_code.reference_id, or event "qr.payment" with data.reference_id

classify_webhook() turns a payload into one WebhookEvent. The reconciler
then applies it with a compare-and-swap on status = 'pending', so replays
and concurrent deliveries are harmless.
"""
import hmac
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Dict, Any

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

from luxetix.config import Settings
from luxetix.db_types import utc_now
from luxetix.models.order import Order, OrderStatus
from luxetix.services.agent_earnings_service import AgentEarningsService
from luxetix.services.order_service import OrderService, transition_pending_order
from luxetix.services.ticket_service import TicketService

logger = logging.getLogger(__name__)

AGENT_REGISTRATION_PREFIX = "AGENT-REG-"


class WebhookSource:
    """Payment channel a callback belongs to."""
    VA = "VA"
    EWALLET = "EWALLET"
    QRIS = "QRIS"


# ACTIVE is the VA created/updated callback, sent before any payment
VA_PAID_STATUSES = {"COMPLETED", "PAID"}
EWALLET_PAID_STATUSES = {"SUCCEEDED", "COMPLETED"}
EWALLET_FAILED_STATUSES = {"FAILED", "EXPIRED"}
QRIS_PAID_STATUSES = {"COMPLETED", "SUCCEEDED"}


class WebhookAuthError(Exception):
    """Callback token missing or wrong."""
    def __init__(self, message: str = "Invalid callback token", status_code: int = 401):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


@dataclass(frozen=True)
class WebhookEvent:
    """A classified Xendit callback."""
    source: str
    reference: str
    provider_status: Optional[str]
    status: Optional[OrderStatus]  # None leaves the order pending
    paid_amount: Optional[Decimal] = None

    @property
    def is_agent_registration(self) -> bool:
        return self.reference.startswith(AGENT_REGISTRATION_PREFIX)


def verify_callback_token(settings: Settings, token: Optional[str]) -> None:
    """
    Check the x-callback-token header against XENDIT_CALLBACK_TOKEN.

    Verification is skipped (with a warning) when no token is configured.
    """
    expected = settings.XENDIT_CALLBACK_TOKEN
    if not expected:
        logger.warning("XENDIT_CALLBACK_TOKEN not configured, accepting unverified webhook")
        return

    if not token or not hmac.compare_digest(token.encode(), expected.encode()):
        logger.warning("Rejected Xendit webhook with invalid callback token")
        raise WebhookAuthError()


def _nested(payload: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, dict) else {}


def _upper(value) -> Optional[str]:
    return str(value).upper() if value is not None else None


def _amount(value) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except ArithmeticError:
        return None


def classify_webhook(payload: Dict[str, Any]) -> Optional[WebhookEvent]:
    """
    Classify a Xendit callback payload.

    Returns None when no reference can be extracted. A returned event with
    status None is recognised but does not move the order.
    """
    if not isinstance(payload, dict):
        return None

    data = _nested(payload, "data")
    qr_code = _nested(payload, "qr_code")

    # FVA payment callback: always a completed payment. Xendit sends
    # callback_virtual_account_id + amount; older payloads carry paid_amount.
    if payload.get("payment_id") and payload.get("external_id") and (
        payload.get("callback_virtual_account_id") or payload.get("paid_amount")
    ):
        return WebhookEvent(
            source=WebhookSource.VA,
            reference=str(payload["external_id"]),
            provider_status=_upper(payload.get("status")) or "PAID",
            status=OrderStatus.PAID,
            paid_amount=_amount(payload.get("paid_amount") or payload.get("amount")),
        )

    # QRIS
    qr_reference = qr_code.get("reference_id")
    if not qr_reference and payload.get("event") == "qr.payment":
        qr_reference = data.get("reference_id")
    if qr_reference:
        token = _upper(payload.get("status") or data.get("status"))
        return WebhookEvent(
            source=WebhookSource.QRIS,
            reference=str(qr_reference),
            provider_status=token,
            status=OrderStatus.PAID if token in QRIS_PAID_STATUSES else None,
            paid_amount=_amount(payload.get("amount") or data.get("amount")),
        )

    # E-wallet
    ewallet_reference = data.get("reference_id") or payload.get("reference_id")
    if ewallet_reference:
        token = _upper(data.get("status") or payload.get("status"))
        if token in EWALLET_PAID_STATUSES:
            status = OrderStatus.PAID
        elif token in EWALLET_FAILED_STATUSES:
            status = OrderStatus.EXPIRED
        else:
            status = None
        return WebhookEvent(
            source=WebhookSource.EWALLET,
            reference=str(ewallet_reference),
            provider_status=token,
            status=status,
            paid_amount=_amount(data.get("capture_amount") or data.get("charge_amount")),
        )

    # Virtual Account
    if payload.get("callback_virtual_account_id") or payload.get("external_id") or payload.get("owner_id"):
        reference = payload.get("external_id")
        if not reference:
            return None
        token = _upper(payload.get("status"))
        payment_status = _upper(payload.get("payment_status"))
        is_paid = token in VA_PAID_STATUSES or payment_status == "PAID"
        return WebhookEvent(
            source=WebhookSource.VA,
            reference=str(reference),
            provider_status=token or payment_status,
            status=OrderStatus.PAID if is_paid else None,
            paid_amount=_amount(payload.get("amount")),
        )

    return None


class WebhookReconciler:
    """
    Applies classified callbacks to orders.

    Every outcome except a database failure is acknowledged so Xendit
    stops retrying. Database errors propagate; the endpoint answers 500
    and Xendit redelivers, which is safe because every write is conditional.
    """

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings
        self.orders = OrderService(db, settings)
        self.tickets = TicketService(db)
        self.earnings = AgentEarningsService(db, settings)

    async def reconcile(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        event = classify_webhook(payload)
        if event is None:
            keys = sorted(payload.keys()) if isinstance(payload, dict) else []
            logger.info(f"Unclassified Xendit webhook ignored, keys: {keys}")
            return {"success": True, "message": "Webhook received but no order reference found"}

        logger.info(
            f"Xendit {event.source} webhook for {event.reference}: "
            f"provider status {event.provider_status} -> {event.status.value if event.status else 'pending'}"
        )

        if event.is_agent_registration:
            logger.info(f"Agent registration reference {event.reference} on order webhook, acknowledged")
            return {"success": True, "message": "Agent registration callback acknowledged"}

        try:
            order_id = uuid.UUID(event.reference)
        except ValueError:
            logger.warning(f"Webhook reference {event.reference} is not an order id, ignored")
            return {"success": True, "message": "Unknown reference"}

        order = await self.orders.get_order(order_id)
        if not order:
            logger.warning(f"Webhook for unknown order {order_id}, ignored")
            return {"success": True, "message": "Order not found"}

        if event.status is None:
            logger.info(f"Order {order.order_number} left {order.status}, no transition for this webhook")
            return self._result(order, "No status change")

        if event.status == OrderStatus.PAID:
            return await self._apply_paid(order, event)
        return await self._apply_expired(order, event)

    async def _apply_paid(self, order: Order, event: WebhookEvent) -> Dict[str, Any]:
        transitioned = await transition_pending_order(
            self.db,
            order.id,
            OrderStatus.PAID,
            paid_at=utc_now(),
            payment_method=func.coalesce(Order.payment_method, event.source),
        )

        current = await self.orders.get_order(order.id)
        if current.status != OrderStatus.PAID.value:
            logger.warning(
                f"Paid webhook for order {order.order_number} ignored: order is already {current.status}"
            )
            return self._result(current, f"Order already {current.status}")

        if event.paid_amount is not None and event.paid_amount != Decimal(current.total_amount):
            logger.warning(
                f"Order {current.order_number} paid amount {event.paid_amount} "
                f"differs from total {current.total_amount}"
            )

        # Re-run on replays: only items still lacking a code are touched
        issued = await self.tickets.issue_ticket_codes(current.id)

        if transitioned:
            await self.earnings.accrue_for_order(current.id)
            logger.info(f"Order {current.order_number} marked paid via {event.source}")
        elif not issued:
            logger.info(f"Duplicate paid webhook for order {current.order_number}, nothing to do")

        await self.db.commit()
        current = await self.orders.get_order(order.id)
        return self._result(current, "Order paid" if transitioned else "Order already paid")

    async def _apply_expired(self, order: Order, event: WebhookEvent) -> Dict[str, Any]:
        expired = await self.orders.expire_order(order)
        await self.db.commit()

        current = await self.orders.get_order(order.id)
        if not expired:
            logger.info(
                f"{event.provider_status} webhook for order {order.order_number} ignored: "
                f"order is {current.status}"
            )
            return self._result(current, f"Order already {current.status}")
        return self._result(current, "Order expired")

    @staticmethod
    def _result(order: Order, message: str) -> Dict[str, Any]:
        return {
            "success": True,
            "message": message,
            "order_id": str(order.id),
            "status": order.status,
        }
