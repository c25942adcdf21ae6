"""
Agent earnings accrual.

When an order is paid for the first time, every agent organizing one of
its concerts is credited once for that order: one AgentPayment row
(gross, platform commission, net) and an atomic increment of the agent's
total_earnings and total_commission_paid.
"""
import logging
import uuid
from collections import defaultdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from luxetix.config import Settings
from luxetix.models.agent import Agent, AgentPayment, AgentPaymentStatus, AgentSettings
from luxetix.models.concert import Concert
from luxetix.models.order import OrderItem

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def split_commission(gross: Decimal, commission_percent: Decimal) -> tuple:
    """Return (commission, net) for a gross amount; gross = commission + net."""
    commission = (gross * commission_percent / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)
    return commission, gross - commission


class AgentEarningsService:
    """Credits organizing agents for paid orders."""

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings

    async def get_commission_percent(self) -> Decimal:
        result = await self.db.execute(
            select(AgentSettings.platform_commission_percent)
            .order_by(AgentSettings.created_at)
            .limit(1)
        )
        percent = result.scalar_one_or_none()
        if percent is None:
            return Decimal(str(self.settings.DEFAULT_COMMISSION_PERCENT))
        return Decimal(str(percent))

    async def accrue_for_order(self, order_id: uuid.UUID) -> List[AgentPayment]:
        """
        Record settlements for a freshly paid order. Caller commits.

        Must only be called on the transition into paid; the
        (agent_id, order_id) unique constraint rejects a second accrual.
        """
        result = await self.db.execute(
            select(Concert.agent_id, OrderItem.subtotal)
            .select_from(OrderItem)
            .join(Concert, Concert.id == OrderItem.concert_id)
            .where(OrderItem.order_id == order_id, Concert.agent_id.is_not(None))
        )
        rows = result.all()
        if not rows:
            return []

        gross_by_agent: Dict[uuid.UUID, Decimal] = defaultdict(lambda: Decimal("0"))
        for agent_id, subtotal in rows:
            gross_by_agent[agent_id] += Decimal(str(subtotal))

        commission_percent = await self.get_commission_percent()

        payments = []
        for agent_id, gross in gross_by_agent.items():
            commission, net = split_commission(gross, commission_percent)

            payment = AgentPayment(
                agent_id=agent_id,
                order_id=order_id,
                gross_amount=gross,
                commission_amount=commission,
                net_amount=net,
                status=AgentPaymentStatus.PENDING.value,
            )
            self.db.add(payment)

            await self.db.execute(
                update(Agent)
                .where(Agent.id == agent_id)
                .values(
                    total_earnings=Agent.total_earnings + gross,
                    total_commission_paid=Agent.total_commission_paid + commission,
                )
                .execution_options(synchronize_session=False)
            )
            payments.append(payment)

            logger.info(
                f"Agent {agent_id} credited for order {order_id}: "
                f"gross={gross} commission={commission} net={net}"
            )

        await self.db.flush()
        return payments
