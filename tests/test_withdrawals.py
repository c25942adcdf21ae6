"""Withdrawal requests and the admin state machine."""
import uuid
from decimal import Decimal

import pytest

from luxetix.models.agent import AgentStatus
from luxetix.models.withdrawal import WithdrawalStatus
from luxetix.services.withdrawal_service import WithdrawalError, WithdrawalService


async def test_balance_with_pending_withdrawal(db, settings, factory):
    agent = await factory.agent(total_earnings=1000000, total_commission_paid=100000)
    service = WithdrawalService(db, settings)
    await service.request_withdrawal(agent, Decimal("200000"))

    balance = await service.get_balance(agent)
    assert balance.available_balance == Decimal("700000")

    with pytest.raises(WithdrawalError) as exc:
        await service.request_withdrawal(agent, Decimal("800000"))
    assert exc.value.status_code == 400
    assert Decimal(exc.value.details["available_balance"]) == balance.available_balance


async def test_request_snapshots_bank_details(db, settings, factory):
    agent = await factory.agent(total_earnings=500000)

    withdrawal = await WithdrawalService(db, settings).request_withdrawal(
        agent, Decimal("100000"), notes="Payout for November"
    )

    assert withdrawal.status == WithdrawalStatus.PENDING.value
    assert withdrawal.bank_name == "BCA"
    assert withdrawal.bank_account_number == "1234567890"
    assert withdrawal.bank_account_name == "PT Swara Kreatif"
    assert withdrawal.notes == "Payout for November"


async def test_below_minimum_is_rejected(db, settings, factory):
    agent = await factory.agent(total_earnings=1000000)

    with pytest.raises(WithdrawalError) as exc:
        await WithdrawalService(db, settings).request_withdrawal(agent, Decimal("49999"))

    assert exc.value.status_code == 400


async def test_minimum_amount_is_allowed(db, settings, factory):
    agent = await factory.agent(total_earnings=50000)

    withdrawal = await WithdrawalService(db, settings).request_withdrawal(agent, Decimal("50000"))

    assert withdrawal.amount == Decimal("50000")


async def test_missing_bank_details_are_rejected(db, settings, factory):
    agent = await factory.agent(total_earnings=1000000, with_bank=False)

    with pytest.raises(WithdrawalError) as exc:
        await WithdrawalService(db, settings).request_withdrawal(agent, Decimal("100000"))

    assert exc.value.status_code == 400
    assert "bank" in exc.value.message


async def test_inactive_agent_is_rejected(db, settings, factory):
    agent = await factory.agent(total_earnings=1000000, status=AgentStatus.PENDING)

    with pytest.raises(WithdrawalError) as exc:
        await WithdrawalService(db, settings).request_withdrawal(agent, Decimal("100000"))

    assert exc.value.status_code == 403


async def test_pending_to_processing_to_completed(db, settings, factory):
    agent = await factory.agent(total_earnings=1000000)
    admin_id = uuid.uuid4()
    service = WithdrawalService(db, settings)
    withdrawal = await service.request_withdrawal(agent, Decimal("400000"))

    processing = await service.process_withdrawal(withdrawal.id, WithdrawalStatus.PROCESSING, admin_id)
    assert processing.status == WithdrawalStatus.PROCESSING.value
    assert processing.processed_at is None

    completed = await service.process_withdrawal(
        withdrawal.id, WithdrawalStatus.COMPLETED, admin_id, admin_notes="Transferred"
    )
    assert completed.status == WithdrawalStatus.COMPLETED.value
    assert completed.processed_by == admin_id
    assert completed.processed_at is not None
    assert completed.admin_notes == "Transferred"

    balance = await service.get_balance(agent)
    assert balance.completed_withdrawals == Decimal("400000")
    assert balance.pending_withdrawals == Decimal("0")
    assert balance.available_balance == Decimal("600000")


async def test_rejection_restores_balance(db, settings, factory):
    agent = await factory.agent(total_earnings=1000000)
    service = WithdrawalService(db, settings)
    withdrawal = await service.request_withdrawal(agent, Decimal("1000000"))
    assert (await service.get_balance(agent)).available_balance == Decimal("0")

    rejected = await service.process_withdrawal(
        withdrawal.id, WithdrawalStatus.REJECTED, uuid.uuid4(), admin_notes="Account name mismatch"
    )

    assert rejected.processed_by is not None
    assert (await service.get_balance(agent)).available_balance == Decimal("1000000")


@pytest.mark.parametrize("terminal", [WithdrawalStatus.COMPLETED, WithdrawalStatus.REJECTED])
async def test_terminal_states_cannot_move(db, settings, factory, terminal):
    agent = await factory.agent(total_earnings=1000000)
    service = WithdrawalService(db, settings)
    withdrawal = await service.request_withdrawal(agent, Decimal("100000"))
    await service.process_withdrawal(withdrawal.id, terminal, uuid.uuid4())

    for target in WithdrawalStatus:
        with pytest.raises(WithdrawalError) as exc:
            await service.process_withdrawal(withdrawal.id, target, uuid.uuid4())
        assert exc.value.status_code == 409


async def test_processing_cannot_go_back_to_pending(db, settings, factory):
    agent = await factory.agent(total_earnings=1000000)
    service = WithdrawalService(db, settings)
    withdrawal = await service.request_withdrawal(agent, Decimal("100000"))
    await service.process_withdrawal(withdrawal.id, WithdrawalStatus.PROCESSING, uuid.uuid4())

    with pytest.raises(WithdrawalError):
        await service.process_withdrawal(withdrawal.id, WithdrawalStatus.PENDING, uuid.uuid4())


async def test_unknown_withdrawal(db, settings):
    with pytest.raises(WithdrawalError) as exc:
        await WithdrawalService(db, settings).process_withdrawal(
            uuid.uuid4(), WithdrawalStatus.COMPLETED, uuid.uuid4()
        )
    assert exc.value.status_code == 404


async def test_admin_listing_filters_by_status(db, settings, factory):
    agent = await factory.agent(total_earnings=1000000)
    service = WithdrawalService(db, settings)
    first = await service.request_withdrawal(agent, Decimal("100000"))
    await service.request_withdrawal(agent, Decimal("100000"))
    await service.process_withdrawal(first.id, WithdrawalStatus.REJECTED, uuid.uuid4())

    pending, pending_total = await service.list_withdrawals(WithdrawalStatus.PENDING)
    everything, total = await service.list_withdrawals()

    assert pending_total == 1
    assert len(pending) == 1
    assert total == 2
    assert len(everything) == 2
