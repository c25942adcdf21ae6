"""Payment intent creation for pending orders."""
from datetime import timedelta
from decimal import Decimal

import pytest

from luxetix.db_types import utc_now
from luxetix.models.order import OrderStatus
from luxetix.schemas.checkout import CheckoutOrderCreate
from luxetix.schemas.payment import CreatePaymentIntentRequest
from luxetix.services.order_service import OrderService
from luxetix.services.payment_service import PaymentError, PaymentService, to_e164
from luxetix.services.xendit_client import PaymentGatewayError


def intent_request(order, method="VA", amount=None, **overrides) -> CreatePaymentIntentRequest:
    data = {
        "order_id": str(order.id),
        "amount": str(order.total_amount if amount is None else amount),
        "payment_method": method,
        "customer_name": "Budi Santoso",
        "customer_email": "buyer@luxetix.id",
        "customer_phone": "081234567890",
    }
    data.update(overrides)
    return CreatePaymentIntentRequest(**data)


@pytest.mark.parametrize("phone,expected", [
    ("081234567890", "+6281234567890"),
    ("6281234567890", "+6281234567890"),
    ("+6281234567890", "+6281234567890"),
])
def test_to_e164(phone, expected):
    assert to_e164(phone) == expected


def test_method_defaults():
    order_id = "6f1c2a52-8a9e-4b8e-9a55-3c1b2d7e9f10"
    base = {
        "order_id": order_id,
        "amount": "100000",
        "customer_name": "Budi",
        "customer_email": "buyer@luxetix.id",
        "customer_phone": "081234567890",
    }
    assert CreatePaymentIntentRequest(payment_method="VA", **base).bank_code.value == "BCA"
    assert CreatePaymentIntentRequest(payment_method="EWALLET", **base).ewallet_type.value == "OVO"
    assert CreatePaymentIntentRequest(payment_method="QRIS", **base).bank_code is None


async def test_create_order_then_virtual_account(db, settings, factory, gateway, fake_xendit):
    ticket_type = await factory.ticket_type(price=100000, total=10)
    order = await OrderService(db, settings).create_order(CheckoutOrderCreate(
        concert_id=ticket_type.concert_id,
        ticket_type_id=ticket_type.id,
        quantity=2,
        customer_name="Budi Santoso",
        customer_email="buyer@luxetix.id",
        customer_phone="081234567890",
    ))
    assert order.total_amount == Decimal("200000")
    assert order.status == OrderStatus.PENDING.value

    before = utc_now()
    order = await PaymentService(db, settings, gateway=gateway).create_payment_intent(
        order.id, intent_request(order, "VA")
    )

    assert order.status == OrderStatus.PENDING.value
    assert order.payment_method == "VA"
    assert order.payment_id and order.payment_id.startswith("va_")
    expected_expiry = before + timedelta(minutes=5)
    assert abs((order.expires_at - expected_expiry).total_seconds()) < 5
    assert order.payment_data["account_number"] == "107669999123456"
    assert order.payment_data["bank_code"] == "BCA"

    body = fake_xendit.last_body
    assert body["external_id"] == str(order.id)
    assert body["expected_amount"] == 200000


async def test_ewallet_intent_uses_e164_phone_and_default_redirect(db, settings, factory, gateway, fake_xendit):
    ticket_type = await factory.ticket_type(price=50000)
    order = await factory.order([ticket_type], quantity=1)

    order = await PaymentService(db, settings, gateway=gateway).create_payment_intent(
        order.id, intent_request(order, "EWALLET", ewallet_type="DANA")
    )

    body = fake_xendit.last_body
    assert body["channel_code"] == "ID_DANA"
    assert body["channel_properties"]["mobile_number"] == "+6281234567890"
    assert body["channel_properties"]["success_redirect_url"].endswith(f"/order-success/{order.id}")
    assert order.payment_method == "EWALLET"
    assert order.payment_data["payment_url"] == "https://ewallet-mock.xendit.co/desktop"
    # The charge carries no expiry; the order keeps its own payment window
    assert "expires_at" not in body
    assert order.expires_at is not None
    assert order.expires_at > utc_now()


async def test_qris_intent(db, settings, factory, gateway):
    ticket_type = await factory.ticket_type(price=125000)
    order = await factory.order([ticket_type], quantity=2)

    order = await PaymentService(db, settings, gateway=gateway).create_payment_intent(
        order.id, intent_request(order, "QRIS")
    )

    assert order.payment_method == "QRIS"
    assert order.payment_id.startswith("qr_")
    assert order.payment_data["qr_string"]


async def test_gateway_failure_leaves_order_untouched(db, settings, factory, gateway, fake_xendit):
    ticket_type = await factory.ticket_type()
    order = await factory.order([ticket_type], quantity=1)
    original_expiry = order.expires_at
    fake_xendit.fail_with = (500, {"error_code": "SERVER_ERROR", "message": "Something went wrong"})

    with pytest.raises(PaymentGatewayError):
        await PaymentService(db, settings, gateway=gateway).create_payment_intent(
            order.id, intent_request(order, "VA")
        )

    await db.refresh(order)
    assert order.status == OrderStatus.PENDING.value
    assert order.payment_id is None
    assert order.payment_method is None
    assert order.payment_data is None
    assert order.expires_at == original_expiry


async def test_amount_mismatch_is_rejected(db, settings, factory, gateway, fake_xendit):
    ticket_type = await factory.ticket_type(price=100000)
    order = await factory.order([ticket_type], quantity=1)

    with pytest.raises(PaymentError) as exc:
        await PaymentService(db, settings, gateway=gateway).create_payment_intent(
            order.id, intent_request(order, "VA", amount="1000")
        )

    assert exc.value.status_code == 422
    assert fake_xendit.requests == []


async def test_paid_order_cannot_get_a_new_intent(db, settings, factory, gateway):
    ticket_type = await factory.ticket_type()
    order = await factory.order([ticket_type], status=OrderStatus.PAID)

    with pytest.raises(PaymentError) as exc:
        await PaymentService(db, settings, gateway=gateway).create_payment_intent(
            order.id, intent_request(order, "QRIS")
        )

    assert exc.value.status_code == 409


async def test_expired_window_is_rejected(db, settings, factory, gateway):
    ticket_type = await factory.ticket_type()
    order = await factory.order([ticket_type], expires_in=timedelta(minutes=-1))

    with pytest.raises(PaymentError) as exc:
        await PaymentService(db, settings, gateway=gateway).create_payment_intent(
            order.id, intent_request(order, "QRIS")
        )

    assert exc.value.status_code == 409
