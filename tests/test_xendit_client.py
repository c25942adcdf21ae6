"""Xendit client: request payloads, auth and response normalization."""
import base64
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from luxetix.services.xendit_client import (
    PaymentGatewayError, XenditAPIError, XenditClient, _format_timestamp,
)

EXPIRES_AT = datetime(2026, 11, 1, 10, 5, 0, 123456, tzinfo=timezone.utc)


def test_timestamp_has_millisecond_precision():
    assert _format_timestamp(EXPIRES_AT) == "2026-11-01T10:05:00.123Z"


async def test_virtual_account_payload_and_basic_auth(gateway, fake_xendit, settings):
    intent = await gateway.create_virtual_account(
        external_id="order-1",
        bank_code="bni",
        name="A" * 80,
        expected_amount=Decimal("200000.00"),
        expires_at=EXPIRES_AT,
    )

    request = fake_xendit.requests[-1]
    assert request.method == "POST"
    assert request.url.path == "/callback_virtual_accounts"

    expected = base64.b64encode(f"{settings.XENDIT_SECRET_KEY}:".encode()).decode()
    assert request.headers["Authorization"] == f"Basic {expected}"

    body = fake_xendit.last_body
    assert body["external_id"] == "order-1"
    assert body["bank_code"] == "BNI"
    assert len(body["name"]) == 50
    assert body["expected_amount"] == 200000
    assert body["is_closed"] is True
    assert body["is_single_use"] is True
    assert body["expiration_date"] == "2026-11-01T10:05:00.123Z"

    assert intent.method == "VA"
    assert intent.provider_id.startswith("va_")
    assert intent.account_number == "107669999123456"
    assert intent.bank_code == "BNI"
    assert intent.expires_at == EXPIRES_AT


async def test_unknown_bank_is_rejected_before_any_request(gateway, fake_xendit):
    with pytest.raises(ValueError):
        await gateway.create_virtual_account(
            external_id="order-1",
            bank_code="UNKNOWN",
            name="Budi",
            expected_amount=100000,
            expires_at=EXPIRES_AT,
        )
    assert fake_xendit.requests == []


async def test_ewallet_charge_payload_and_checkout_url_fallback(gateway, fake_xendit):
    intent = await gateway.create_ewallet_charge(
        reference_id="order-2",
        ewallet_type="dana",
        amount=150000,
        mobile_number="+6281234567890",
        success_redirect_url="https://luxetix.lovable.app/order-success/order-2",
    )

    body = fake_xendit.last_body
    assert body == {
        "reference_id": "order-2",
        "currency": "IDR",
        "amount": 150000,
        "checkout_method": "ONE_TIME_PAYMENT",
        "channel_code": "ID_DANA",
        "channel_properties": {
            "mobile_number": "+6281234567890",
            "success_redirect_url": "https://luxetix.lovable.app/order-success/order-2",
        },
    }
    # No deeplink in the response, so the desktop checkout is used
    assert intent.method == "EWALLET"
    assert intent.payment_url == "https://ewallet-mock.xendit.co/desktop"


async def test_ewallet_prefers_mobile_deeplink(settings):
    def handler(request):
        return httpx.Response(202, json={
            "id": "ewc_1",
            "actions": {
                "mobile_deeplink_checkout_url": "shopeeid://pay",
                "desktop_web_checkout_url": "https://desktop",
            },
        })

    client = XenditClient(settings, transport=httpx.MockTransport(handler))
    intent = await client.create_ewallet_charge(
        reference_id="order-3",
        ewallet_type="SHOPEEPAY",
        amount=50000,
        mobile_number="+6281234567890",
        success_redirect_url="https://example.com",
    )
    assert intent.payment_url == "shopeeid://pay"


async def test_qr_code_payload_and_api_version(gateway, fake_xendit):
    intent = await gateway.create_qr_code(
        reference_id="order-4",
        amount=Decimal("300000"),
        expires_at=EXPIRES_AT,
    )

    request = fake_xendit.requests[-1]
    assert request.url.path == "/qr_codes"
    assert request.headers["api-version"] == "2022-07-31"
    assert fake_xendit.last_body == {
        "reference_id": "order-4",
        "type": "DYNAMIC",
        "currency": "IDR",
        "amount": 300000,
        "expires_at": "2026-11-01T10:05:00.123Z",
    }
    assert intent.method == "QRIS"
    assert intent.qr_string.startswith("000201")

    envelope = intent.to_payment_data()
    assert envelope["method"] == "QRIS"
    assert envelope["provider_id"] == intent.provider_id
    assert envelope["expires_at"] == EXPIRES_AT.isoformat()
    assert envelope["raw"]["reference_id"] == "order-4"


async def test_provider_error_carries_raw_body(gateway, fake_xendit):
    fake_xendit.fail_with = (400, {"error_code": "API_VALIDATION_ERROR", "message": "amount is invalid"})

    with pytest.raises(XenditAPIError) as exc:
        await gateway.create_qr_code(reference_id="order-5", amount=1, expires_at=EXPIRES_AT)

    assert exc.value.provider_status_code == 400
    assert exc.value.error_code == "API_VALIDATION_ERROR"
    assert exc.value.status_code == 502
    assert "amount is invalid" in exc.value.message


async def test_network_failure_is_a_gateway_error(settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = XenditClient(settings, transport=httpx.MockTransport(handler))
    with pytest.raises(PaymentGatewayError) as exc:
        await client.create_qr_code(reference_id="order-6", amount=1000, expires_at=EXPIRES_AT)

    assert not isinstance(exc.value, XenditAPIError)
    assert exc.value.status_code == 502


async def test_missing_secret_key_is_unavailable(settings):
    client = XenditClient(settings.model_copy(update={"XENDIT_SECRET_KEY": ""}))

    with pytest.raises(PaymentGatewayError) as exc:
        await client.create_qr_code(reference_id="order-7", amount=1000, expires_at=EXPIRES_AT)

    assert exc.value.status_code == 503
