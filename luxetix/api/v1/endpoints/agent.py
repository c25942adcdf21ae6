"""
Agent ledger API endpoints.

Handles:
- Derived balance
- Withdrawal requests and history
- Per-order settlements
"""
import logging
from decimal import Decimal

from fastapi import APIRouter, HTTPException, status

from luxetix.api.deps import DB, SettingsDep, ActiveAgent
from luxetix.schemas.agent import BalanceResponse, AgentPaymentResponse, AgentPaymentListResponse
from luxetix.schemas.withdrawal import WithdrawalCreate, WithdrawalResponse, WithdrawalListResponse
from luxetix.services.withdrawal_service import WithdrawalService, WithdrawalError

logger = logging.getLogger(__name__)


router = APIRouter(tags=["Agent"])


@router.get(
    "/balance",
    response_model=BalanceResponse,
    summary="Get available balance",
)
async def get_balance(
    db: DB,
    settings: SettingsDep,
    agent: ActiveAgent,
):
    balance = await WithdrawalService(db, settings).get_balance(agent)
    return BalanceResponse(
        total_earnings=balance.total_earnings,
        total_commission=balance.total_commission,
        net_earnings=balance.net_earnings,
        pending_withdrawals=balance.pending_withdrawals,
        completed_withdrawals=balance.completed_withdrawals,
        available_balance=balance.available_balance,
        min_withdrawal_amount=Decimal(settings.MIN_WITHDRAWAL_AMOUNT),
    )


@router.get(
    "/withdrawals",
    response_model=WithdrawalListResponse,
    summary="List my withdrawals",
)
async def list_my_withdrawals(
    db: DB,
    settings: SettingsDep,
    agent: ActiveAgent,
):
    withdrawals = await WithdrawalService(db, settings).list_agent_withdrawals(agent.id)
    return WithdrawalListResponse(
        items=[WithdrawalResponse.model_validate(w) for w in withdrawals],
        total=len(withdrawals),
    )


@router.post(
    "/withdrawals",
    response_model=WithdrawalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a withdrawal",
)
async def request_withdrawal(
    data: WithdrawalCreate,
    db: DB,
    settings: SettingsDep,
    agent: ActiveAgent,
):
    service = WithdrawalService(db, settings)
    try:
        withdrawal = await service.request_withdrawal(agent, data.amount, data.notes)
    except WithdrawalError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return WithdrawalResponse.model_validate(withdrawal)


@router.get(
    "/payments",
    response_model=AgentPaymentListResponse,
    summary="List my settlements",
)
async def list_my_payments(
    db: DB,
    settings: SettingsDep,
    agent: ActiveAgent,
):
    payments = await WithdrawalService(db, settings).list_agent_payments(agent.id)
    return AgentPaymentListResponse(
        items=[AgentPaymentResponse.model_validate(p) for p in payments],
        total=len(payments),
    )
