"""
Xendit Payment Gateway Client.

Creates payment intents through the Xendit HTTP API:
- Closed, single-use Virtual Accounts (bank transfer)
- One-time e-wallet charges (OVO, DANA, ShopeePay, LinkAja)
- Dynamic QRIS codes

Every adapter normalizes the provider response into one PaymentIntent,
whose envelope is stored on the order for display.

Authentication is HTTP Basic with the secret key as username and an
empty password.

API Docs: https://developers.xendit.co/api-reference/
"""
import httpx
import logging
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from luxetix.config import Settings

logger = logging.getLogger(__name__)

# QR Codes API version the payload below is written against
QR_CODES_API_VERSION = "2022-07-31"

# Xendit rejects VA names longer than this
VA_NAME_MAX_LENGTH = 50


class VirtualAccountBank(str, Enum):
    """Banks supported for closed Virtual Accounts."""
    BCA = "BCA"
    BNI = "BNI"
    BRI = "BRI"
    MANDIRI = "MANDIRI"
    PERMATA = "PERMATA"
    BSI = "BSI"
    CIMB = "CIMB"


class EWalletBrand(str, Enum):
    """E-wallet channels; the channel code is ID_<brand>."""
    OVO = "OVO"
    DANA = "DANA"
    SHOPEEPAY = "SHOPEEPAY"
    LINKAJA = "LINKAJA"


class PaymentGatewayError(Exception):
    """Payment intent could not be created; the buyer should try again."""

    def __init__(self, message: str, status_code: int = 502, details: Dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class XenditAPIError(PaymentGatewayError):
    """Non-2xx response from the Xendit API."""

    def __init__(self, status_code: int, message: str, error_code: str = None, raw: Any = None):
        self.provider_status_code = status_code
        self.error_code = error_code
        self.raw = raw
        super().__init__(
            f"Xendit API Error ({status_code}): {message}",
            details={"error_code": error_code, "provider_status": status_code},
        )


@dataclass
class PaymentIntent:
    """Provider payment request normalized across VA, e-wallet and QRIS."""
    method: str  # VA, EWALLET, QRIS
    provider_id: str
    expires_at: Optional[datetime] = None
    payment_url: Optional[str] = None
    account_number: Optional[str] = None
    bank_code: Optional[str] = None
    qr_string: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_payment_data(self) -> Dict[str, Any]:
        """JSON envelope persisted on the order / registration."""
        return {
            "method": self.method,
            "provider_id": self.provider_id,
            "payment_url": self.payment_url,
            "account_number": self.account_number,
            "bank_code": self.bank_code,
            "qr_string": self.qr_string,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "raw": self.raw,
        }


def _format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2026-01-01T10:00:00.000Z."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _to_amount(amount) -> int:
    """IDR amounts are whole numbers on the wire."""
    return int(Decimal(str(amount)).quantize(Decimal("1")))


class XenditClient:
    """
    Client for the Xendit payment API.

    Usage:
        client = XenditClient(settings)

        intent = await client.create_virtual_account(
            external_id=str(order.id),
            bank_code="BCA",
            name=order.customer_name,
            expected_amount=order.total_amount,
            expires_at=expires_at,
        )
        order.payment_data = intent.to_payment_data()

    A custom httpx transport can be passed for testing.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = settings.XENDIT_API_URL.rstrip("/")
        self.secret_key = settings.XENDIT_SECRET_KEY
        self.timeout = settings.XENDIT_TIMEOUT_SECONDS
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)

    async def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        headers: Optional[Dict] = None
    ) -> Dict:
        """Make authenticated request to the Xendit API."""
        if not self.is_configured:
            raise PaymentGatewayError("Payment gateway is not configured", status_code=503)

        request_headers = {"Content-Type": "application/json"}
        if headers:
            request_headers.update(headers)

        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        try:
            async with httpx.AsyncClient(
                auth=(self.secret_key, ""),
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method.upper(), url, json=data, headers=request_headers)
        except httpx.HTTPError as e:
            logger.error(f"Xendit request to {endpoint} failed: {e!r}")
            raise PaymentGatewayError(f"Payment gateway unreachable: {e}")

        if response.status_code >= 400:
            logger.error(f"Xendit API error: {response.status_code} - {response.text}")
            try:
                error_data = response.json() if response.text else {}
            except ValueError:
                error_data = {}
            if not isinstance(error_data, dict):
                error_data = {}
            raise XenditAPIError(
                status_code=response.status_code,
                message=error_data.get("message", response.text or "Unknown error"),
                error_code=error_data.get("error_code"),
                raw=error_data or response.text,
            )

        try:
            return response.json() if response.text else {}
        except ValueError:
            logger.error(f"Xendit returned a non-JSON body for {endpoint}: {response.text}")
            raise PaymentGatewayError("Payment gateway returned an invalid response")

    # ==================== VIRTUAL ACCOUNT ====================

    async def create_virtual_account(
        self,
        external_id: str,
        bank_code: str,
        name: str,
        expected_amount,
        expires_at: datetime,
    ) -> PaymentIntent:
        """
        Create a closed, single-use Virtual Account for the exact amount.

        Returns:
            PaymentIntent with account_number and bank_code set
        """
        bank_code = VirtualAccountBank(bank_code.upper()).value

        payload = {
            "external_id": external_id,
            "bank_code": bank_code,
            "name": name[:VA_NAME_MAX_LENGTH],
            "expected_amount": _to_amount(expected_amount),
            "is_closed": True,
            "is_single_use": True,
            "expiration_date": _format_timestamp(expires_at),
        }

        logger.info(f"Creating Xendit VA for {external_id} ({bank_code})")
        result = await self._request("POST", "/callback_virtual_accounts", data=payload)
        logger.info(f"Xendit VA created: {result.get('id')} for {external_id}")

        return PaymentIntent(
            method="VA",
            provider_id=result.get("id"),
            expires_at=expires_at,
            account_number=result.get("account_number"),
            bank_code=result.get("bank_code", bank_code),
            raw=result,
        )

    # ==================== E-WALLET ====================

    async def create_ewallet_charge(
        self,
        reference_id: str,
        ewallet_type: str,
        amount,
        mobile_number: str,
        success_redirect_url: str,
    ) -> PaymentIntent:
        """
        Create a one-time e-wallet charge.

        The charge API takes no expiry; the order's own payment window
        and the sweep grace period bound it.

        The checkout URL prefers the mobile deeplink, then the desktop
        web checkout, then the mobile web checkout.
        """
        brand = EWalletBrand(ewallet_type.upper()).value

        payload = {
            "reference_id": reference_id,
            "currency": "IDR",
            "amount": _to_amount(amount),
            "checkout_method": "ONE_TIME_PAYMENT",
            "channel_code": f"ID_{brand}",
            "channel_properties": {
                "mobile_number": mobile_number,
                "success_redirect_url": success_redirect_url,
            },
        }

        logger.info(f"Creating Xendit e-wallet charge for {reference_id} ({brand})")
        result = await self._request("POST", "/ewallets/charges", data=payload)
        logger.info(f"Xendit e-wallet charge created: {result.get('id')} for {reference_id}")

        actions = result.get("actions") or {}
        payment_url = (
            actions.get("mobile_deeplink_checkout_url")
            or actions.get("desktop_web_checkout_url")
            or actions.get("mobile_web_checkout_url")
        )

        return PaymentIntent(
            method="EWALLET",
            provider_id=result.get("id"),
            payment_url=payment_url,
            raw=result,
        )

    # ==================== QRIS ====================

    async def create_qr_code(
        self,
        reference_id: str,
        amount,
        expires_at: datetime,
    ) -> PaymentIntent:
        """Create a dynamic QRIS code for the exact amount."""
        payload = {
            "reference_id": reference_id,
            "type": "DYNAMIC",
            "currency": "IDR",
            "amount": _to_amount(amount),
            "expires_at": _format_timestamp(expires_at),
        }

        logger.info(f"Creating Xendit QR code for {reference_id}")
        result = await self._request(
            "POST",
            "/qr_codes",
            data=payload,
            headers={"api-version": QR_CODES_API_VERSION},
        )
        logger.info(f"Xendit QR code created: {result.get('id')} for {reference_id}")

        return PaymentIntent(
            method="QRIS",
            provider_id=result.get("id"),
            expires_at=expires_at,
            qr_string=result.get("qr_string"),
            raw=result,
        )
