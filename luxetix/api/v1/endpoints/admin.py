"""
Admin API endpoints.

Handles:
- Withdrawal review and processing
- Promotion of paid agent registrations
- Ticket lookup and redemption at the venue
"""
import uuid
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from luxetix.api.deps import DB, SettingsDep, AdminUser
from luxetix.models.withdrawal import WithdrawalStatus
from luxetix.schemas.agent import AgentResponse
from luxetix.schemas.ticket import TicketResponse
from luxetix.schemas.withdrawal import WithdrawalProcess, WithdrawalResponse, WithdrawalListResponse
from luxetix.services.agent_registration_service import AgentRegistrationService, RegistrationError
from luxetix.services.ticket_service import TicketService, TicketValidationError, TicketInfo
from luxetix.services.withdrawal_service import WithdrawalService, WithdrawalError

logger = logging.getLogger(__name__)


router = APIRouter(tags=["Admin"])


def _ticket_response(ticket: TicketInfo) -> TicketResponse:
    return TicketResponse(
        ticket_code=ticket.ticket_code,
        order_id=ticket.order_id,
        order_number=ticket.order_number,
        order_status=ticket.order_status,
        customer_name=ticket.customer_name,
        customer_email=ticket.customer_email,
        quantity=ticket.quantity,
        subtotal=ticket.subtotal,
        is_used=ticket.is_used,
        used_at=ticket.used_at,
        is_valid=ticket.is_valid,
        concert_title=ticket.concert_title,
        concert_date=ticket.concert_date,
        venue=ticket.venue,
        ticket_type_name=ticket.ticket_type_name,
    )


# ==================== WITHDRAWALS ====================

@router.get(
    "/withdrawals",
    response_model=WithdrawalListResponse,
    summary="List withdrawals",
)
async def list_withdrawals(
    db: DB,
    settings: SettingsDep,
    admin: AdminUser,
    status: Optional[WithdrawalStatus] = Query(None, description="Filter by status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    withdrawals, total = await WithdrawalService(db, settings).list_withdrawals(status, skip, limit)
    return WithdrawalListResponse(
        items=[WithdrawalResponse.model_validate(w) for w in withdrawals],
        total=total,
    )


@router.post(
    "/withdrawals/{withdrawal_id}/process",
    response_model=WithdrawalResponse,
    summary="Process a withdrawal",
    description="Move a withdrawal to processing, completed or rejected."
)
async def process_withdrawal(
    withdrawal_id: uuid.UUID,
    data: WithdrawalProcess,
    db: DB,
    settings: SettingsDep,
    admin: AdminUser,
):
    service = WithdrawalService(db, settings)
    try:
        withdrawal = await service.process_withdrawal(
            withdrawal_id, data.status, admin.id, data.admin_notes
        )
    except WithdrawalError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return WithdrawalResponse.model_validate(withdrawal)


# ==================== AGENT REGISTRATIONS ====================

@router.post(
    "/agent-registrations/{registration_id}/promote",
    response_model=AgentResponse,
    summary="Promote a paid registration to an active agent",
)
async def promote_registration(
    registration_id: uuid.UUID,
    db: DB,
    settings: SettingsDep,
    admin: AdminUser,
):
    service = AgentRegistrationService(db, settings)
    try:
        agent = await service.promote_registration_to_agent(registration_id, processed_by=admin.id)
    except RegistrationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return AgentResponse.model_validate(agent)


# ==================== TICKETS ====================

@router.get(
    "/tickets/{ticket_code}",
    response_model=TicketResponse,
    summary="Look up a ticket",
)
async def get_ticket(
    ticket_code: str,
    db: DB,
    admin: AdminUser,
):
    try:
        ticket = await TicketService(db).get_ticket(ticket_code)
    except TicketValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _ticket_response(ticket)


@router.post(
    "/tickets/{ticket_code}/redeem",
    response_model=TicketResponse,
    summary="Redeem a ticket at the gate",
)
async def redeem_ticket(
    ticket_code: str,
    db: DB,
    admin: AdminUser,
):
    try:
        ticket = await TicketService(db).redeem_ticket(ticket_code, validated_by=admin.id)
    except TicketValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _ticket_response(ticket)
