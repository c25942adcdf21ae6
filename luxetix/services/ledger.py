"""
Agent balance derivation.

The withdrawable balance is never stored. It is recomputed on every read
from the agent's cumulative totals and withdrawal history:

    available = total_earnings - total_commission_paid
                - sum(pending + processing withdrawals)
                - sum(completed withdrawals)

Rejected withdrawals appear in neither sum, so rejecting a request
restores the amount to the available pool with no extra bookkeeping.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Any

from luxetix.models.withdrawal import WithdrawalStatus

ZERO = Decimal("0")

IN_FLIGHT_STATUSES = {
    WithdrawalStatus.PENDING.value,
    WithdrawalStatus.PROCESSING.value,
}


@dataclass(frozen=True)
class BalanceSummary:
    """Derived agent balance."""
    total_earnings: Decimal
    total_commission: Decimal
    pending_withdrawals: Decimal
    completed_withdrawals: Decimal
    available_balance: Decimal

    @property
    def net_earnings(self) -> Decimal:
        return self.total_earnings - self.total_commission


def _as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _status_of(withdrawal: Any) -> str:
    status = withdrawal["status"] if isinstance(withdrawal, dict) else withdrawal.status
    return getattr(status, "value", status)


def _amount_of(withdrawal: Any) -> Decimal:
    amount = withdrawal["amount"] if isinstance(withdrawal, dict) else withdrawal.amount
    return _as_decimal(amount)


def calculate_balance(
    total_earnings,
    total_commission_paid,
    withdrawals: Iterable[Any],
) -> BalanceSummary:
    """
    Compute an agent's balance.

    withdrawals may be Withdrawal rows or mappings with status and amount.
    """
    pending = ZERO
    completed = ZERO
    for withdrawal in withdrawals:
        status = _status_of(withdrawal)
        if status in IN_FLIGHT_STATUSES:
            pending += _amount_of(withdrawal)
        elif status == WithdrawalStatus.COMPLETED.value:
            completed += _amount_of(withdrawal)

    earnings = _as_decimal(total_earnings)
    commission = _as_decimal(total_commission_paid)

    return BalanceSummary(
        total_earnings=earnings,
        total_commission=commission,
        pending_withdrawals=pending,
        completed_withdrawals=completed,
        available_balance=earnings - commission - pending - completed,
    )
