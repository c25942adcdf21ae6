"""
Xendit webhook endpoints.

Both endpoints verify the x-callback-token header, acknowledge anything
they cannot act on with 200, and answer 500 on database failure so
Xendit redelivers.
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status, Request, Header
from sqlalchemy.exc import SQLAlchemyError

from luxetix.api.deps import DB, SettingsDep
from luxetix.schemas.agent import RegistrationWebhookAck
from luxetix.schemas.payment import WebhookAck
from luxetix.services.agent_registration_service import AgentRegistrationService
from luxetix.services.webhook_service import WebhookReconciler, WebhookAuthError, verify_callback_token

logger = logging.getLogger(__name__)


router = APIRouter(tags=["Webhooks"])


async def _read_payload(request: Request) -> Optional[dict]:
    body = await request.body()
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning(f"Xendit webhook with non-JSON body ignored ({len(body)} bytes)")
        return None
    return payload if isinstance(payload, dict) else None


def _check_token(settings, token: Optional[str]) -> None:
    try:
        verify_callback_token(settings, token)
    except WebhookAuthError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/xendit",
    response_model=WebhookAck,
    summary="Xendit payment webhook",
    description="VA, e-wallet and QRIS payment callbacks for ticket orders.",
    include_in_schema=False  # Hide from API docs for security
)
async def xendit_webhook(
    request: Request,
    db: DB,
    settings: SettingsDep,
    x_callback_token: Optional[str] = Header(None, alias="x-callback-token"),
):
    """
    Reconcile an order from a Xendit callback.

    Idempotent: duplicate deliveries leave the order and its ticket codes unchanged.
    """
    _check_token(settings, x_callback_token)

    payload = await _read_payload(request)
    if payload is None:
        return WebhookAck(message="Webhook received but payload not recognised")

    try:
        result = await WebhookReconciler(db, settings).reconcile(payload)
    except SQLAlchemyError as e:
        logger.error(f"Database error processing Xendit webhook: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed"
        )

    return WebhookAck(success=result["success"], message=result["message"])


@router.post(
    "/xendit/agent-registration",
    response_model=RegistrationWebhookAck,
    summary="Xendit agent registration webhook",
    description="Payment callbacks for AGENT-REG- references.",
    include_in_schema=False
)
async def agent_registration_webhook(
    request: Request,
    db: DB,
    settings: SettingsDep,
    x_callback_token: Optional[str] = Header(None, alias="x-callback-token"),
):
    """Mark a registration paid. Promotion to agent is a separate admin step."""
    _check_token(settings, x_callback_token)

    payload = await _read_payload(request)
    if payload is None:
        return RegistrationWebhookAck(message="Not an agent registration")

    try:
        result = await AgentRegistrationService(db, settings).reconcile_payment(payload)
    except SQLAlchemyError as e:
        logger.error(f"Database error processing agent registration webhook: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed"
        )

    return RegistrationWebhookAck(**result)
