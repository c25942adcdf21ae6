"""
Agent withdrawal ledger.

Agents request cash-outs against their derived balance; admins move
requests through pending -> processing -> completed | rejected
(pending may also go straight to completed or rejected).
"""
import logging
import uuid
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from luxetix.config import Settings
from luxetix.db_types import utc_now
from luxetix.models.agent import Agent, AgentPayment
from luxetix.models.withdrawal import Withdrawal, WithdrawalStatus, WITHDRAWAL_TRANSITIONS
from luxetix.services.ledger import BalanceSummary, calculate_balance

logger = logging.getLogger(__name__)

STAMPED_STATUSES = {
    WithdrawalStatus.COMPLETED.value,
    WithdrawalStatus.REJECTED.value,
}


class WithdrawalError(Exception):
    """Withdrawal request or processing rejected."""
    def __init__(self, message: str, status_code: int = 400, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class WithdrawalService:
    """Service for agent balances and withdrawals."""

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings

    async def get_balance(self, agent: Agent) -> BalanceSummary:
        """Derive the agent's balance from current database state."""
        result = await self.db.execute(
            select(Agent.total_earnings, Agent.total_commission_paid).where(Agent.id == agent.id)
        )
        row = result.one()
        withdrawals = await self._agent_withdrawals(agent.id)
        return calculate_balance(row.total_earnings, row.total_commission_paid, withdrawals)

    async def request_withdrawal(
        self,
        agent: Agent,
        amount: Decimal,
        notes: Optional[str] = None
    ) -> Withdrawal:
        """
        Create a pending withdrawal.

        The agent row is locked while the balance is checked and the
        request inserted, so concurrent requests cannot overdraw.
        """
        amount = Decimal(str(amount))
        minimum = Decimal(self.settings.MIN_WITHDRAWAL_AMOUNT)
        if amount < minimum:
            raise WithdrawalError(f"Minimum withdrawal is Rp {minimum:,.0f}", status_code=400)

        result = await self.db.execute(
            select(Agent)
            .where(Agent.id == agent.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        locked = result.scalar_one_or_none()
        if not locked:
            raise WithdrawalError("Agent not found", status_code=404)

        if not locked.is_active:
            raise WithdrawalError("Only active agents can request withdrawals", status_code=403)

        if not locked.has_bank_details:
            raise WithdrawalError("Please add your bank details before withdrawing", status_code=400)

        withdrawals = await self._agent_withdrawals(locked.id)
        balance = calculate_balance(locked.total_earnings, locked.total_commission_paid, withdrawals)
        if amount > balance.available_balance:
            raise WithdrawalError(
                "Insufficient balance",
                status_code=400,
                details={"available_balance": str(balance.available_balance)},
            )

        withdrawal = Withdrawal(
            agent_id=locked.id,
            amount=amount,
            bank_name=locked.bank_name,
            bank_account_number=locked.bank_account_number,
            bank_account_name=locked.bank_account_name or locked.business_name,
            notes=notes,
            status=WithdrawalStatus.PENDING.value,
        )
        self.db.add(withdrawal)
        await self.db.commit()

        logger.info(
            f"Withdrawal {withdrawal.id} requested by agent {locked.id}: {amount} "
            f"(available before: {balance.available_balance})"
        )
        return withdrawal

    async def process_withdrawal(
        self,
        withdrawal_id: uuid.UUID,
        new_status: WithdrawalStatus,
        admin_id: uuid.UUID,
        admin_notes: Optional[str] = None
    ) -> Withdrawal:
        """
        Move a withdrawal along its state machine.

        completed and rejected stamp processed_by / processed_at. The write
        is conditioned on the status read here, so a concurrent decision wins
        exactly once.
        """
        new_status = WithdrawalStatus(new_status)
        withdrawal = await self.get_withdrawal(withdrawal_id)
        if not withdrawal:
            raise WithdrawalError("Withdrawal not found", status_code=404)

        current = withdrawal.status
        if new_status.value not in WITHDRAWAL_TRANSITIONS.get(current, set()):
            raise WithdrawalError(
                f"Cannot move withdrawal from {current} to {new_status.value}",
                status_code=409,
            )

        values = {"status": new_status.value, "updated_at": utc_now()}
        if admin_notes is not None:
            values["admin_notes"] = admin_notes
        if new_status.value in STAMPED_STATUSES:
            values["processed_by"] = admin_id
            values["processed_at"] = utc_now()

        result = await self.db.execute(
            update(Withdrawal)
            .where(Withdrawal.id == withdrawal_id, Withdrawal.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise WithdrawalError("Withdrawal was updated by someone else, reload and retry", status_code=409)

        await self.db.commit()
        logger.info(f"Withdrawal {withdrawal_id} moved {current} -> {new_status.value} by {admin_id}")
        return await self.get_withdrawal(withdrawal_id)

    async def get_withdrawal(self, withdrawal_id: uuid.UUID) -> Optional[Withdrawal]:
        result = await self.db.execute(
            select(Withdrawal)
            .where(Withdrawal.id == withdrawal_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_agent_withdrawals(self, agent_id: uuid.UUID) -> List[Withdrawal]:
        return await self._agent_withdrawals(agent_id, newest_first=True)

    async def list_withdrawals(
        self,
        status: Optional[WithdrawalStatus] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Tuple[List[Withdrawal], int]:
        """Admin view of all withdrawals, optionally filtered by status."""
        query = select(Withdrawal)
        count_query = select(func.count(Withdrawal.id))
        if status:
            status_value = WithdrawalStatus(status).value
            query = query.where(Withdrawal.status == status_value)
            count_query = count_query.where(Withdrawal.status == status_value)

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(Withdrawal.created_at.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_agent_payments(self, agent_id: uuid.UUID) -> List[AgentPayment]:
        result = await self.db.execute(
            select(AgentPayment)
            .where(AgentPayment.agent_id == agent_id)
            .order_by(AgentPayment.created_at.desc())
        )
        return list(result.scalars().all())

    async def _agent_withdrawals(self, agent_id: uuid.UUID, newest_first: bool = False) -> List[Withdrawal]:
        order = Withdrawal.created_at.desc() if newest_first else Withdrawal.created_at
        result = await self.db.execute(
            select(Withdrawal)
            .where(Withdrawal.agent_id == agent_id)
            .order_by(order)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
