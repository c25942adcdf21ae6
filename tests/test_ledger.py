"""Derived agent balance."""
from decimal import Decimal

from luxetix.services.agent_earnings_service import split_commission
from luxetix.services.ledger import calculate_balance


def test_pending_withdrawal_reduces_available_balance():
    balance = calculate_balance(
        Decimal("1000000"),
        Decimal("100000"),
        [{"status": "pending", "amount": Decimal("200000")}],
    )

    assert balance.available_balance == Decimal("700000")
    assert balance.pending_withdrawals == Decimal("200000")
    assert balance.net_earnings == Decimal("900000")
    assert Decimal("800000") > balance.available_balance


def test_every_status_is_counted_once():
    balance = calculate_balance(
        2000000,
        "200000",
        [
            {"status": "pending", "amount": 100000},
            {"status": "processing", "amount": 150000},
            {"status": "completed", "amount": 500000},
            {"status": "rejected", "amount": 999999},
        ],
    )

    assert balance.pending_withdrawals == Decimal("250000")
    assert balance.completed_withdrawals == Decimal("500000")
    assert balance.available_balance == Decimal("1050000")


def test_rejected_withdrawal_is_restored_to_the_pool():
    before = calculate_balance(1000000, 0, [{"status": "pending", "amount": 300000}])
    after = calculate_balance(1000000, 0, [{"status": "rejected", "amount": 300000}])

    assert before.available_balance == Decimal("700000")
    assert after.available_balance == Decimal("1000000")


def test_empty_history_and_missing_totals():
    balance = calculate_balance(None, None, [])
    assert balance.available_balance == Decimal("0")


def test_commission_split_rounds_half_up():
    commission, net = split_commission(Decimal("100005"), Decimal("10"))
    assert commission == Decimal("10000.50")
    assert commission + net == Decimal("100005")

    commission, net = split_commission(Decimal("33333"), Decimal("7.5"))
    assert commission == Decimal("2499.98")
    assert commission + net == Decimal("33333")
