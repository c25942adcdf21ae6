"""Paid agent registration, its webhook and promotion to agent."""
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from luxetix.db_types import utc_now
from luxetix.models.agent import (
    Agent, AgentRegistration, AgentSettings, AgentStatus, RegistrationStatus,
)
from luxetix.models.user import AppRole, Profile, UserRole
from luxetix.schemas.agent import AgentRegistrationCreate
from luxetix.services.agent_registration_service import (
    AgentRegistrationService, RegistrationError, extract_registration_id, is_registration_paid,
)
from luxetix.services.xendit_client import PaymentGatewayError


def registration_request(**overrides) -> AgentRegistrationCreate:
    data = {
        "business_name": "Swara Kreatif",
        "business_description": "Indie concert promoter",
        "bank_name": "BCA",
        "bank_account_number": "1234567890",
        "bank_account_name": "PT Swara Kreatif",
    }
    data.update(overrides)
    return AgentRegistrationCreate(**data)


def paid_callback(registration) -> dict:
    return {
        "callback_virtual_account_id": "va_reg",
        "external_id": registration.reference,
        "bank_code": "BCA",
        "status": "COMPLETED",
    }


async def registrations_of(db, user_id):
    result = await db.execute(
        select(AgentRegistration)
        .where(AgentRegistration.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def test_register_creates_virtual_account_for_fee(db, settings, gateway, fake_xendit):
    user_id = uuid.uuid4()
    before = utc_now()

    registration = await AgentRegistrationService(db, settings, gateway=gateway).register(
        user_id, registration_request(payment_method="va_mandiri"), email="rina@luxetix.id"
    )

    assert registration.status == RegistrationStatus.PENDING.value
    assert registration.registration_fee == Decimal("500000")
    assert registration.payment_id.startswith("va_")
    assert registration.payment_data["bank_code"] == "MANDIRI"
    assert abs((registration.expires_at - (before + timedelta(hours=24))).total_seconds()) < 5

    body = fake_xendit.last_body
    assert body["external_id"] == f"AGENT-REG-{registration.id}"
    assert body["bank_code"] == "MANDIRI"
    assert body["expected_amount"] == 500000
    assert body["name"] == "rina"


async def test_register_with_qris_and_configured_fee(db, settings, gateway, fake_xendit):
    db.add(AgentSettings(registration_fee=Decimal("750000"), platform_commission_percent=Decimal("12.5")))
    user_id = uuid.uuid4()
    db.add(Profile(user_id=user_id, full_name="Rina Wijaya"))
    await db.commit()

    registration = await AgentRegistrationService(db, settings, gateway=gateway).register(
        user_id, registration_request(payment_method="qris")
    )

    assert registration.registration_fee == Decimal("750000")
    assert registration.payment_data["method"] == "QRIS"
    assert fake_xendit.requests[-1].url.path == "/qr_codes"
    assert fake_xendit.last_body["reference_id"] == registration.reference


async def test_pending_registration_blocks_until_it_expires(db, settings, gateway):
    user_id = uuid.uuid4()
    service = AgentRegistrationService(db, settings, gateway=gateway)
    first = await service.register(user_id, registration_request())

    with pytest.raises(RegistrationError) as exc:
        await service.register(user_id, registration_request())
    assert exc.value.status_code == 409
    assert "pending" in exc.value.message

    await db.execute(
        update(AgentRegistration)
        .where(AgentRegistration.id == first.id)
        .values(expires_at=utc_now() - timedelta(minutes=1))
    )
    await db.commit()

    second = await service.register(user_id, registration_request())

    assert second.id != first.id
    assert [r.id for r in await registrations_of(db, user_id)] == [second.id]


async def test_active_agent_cannot_register_again(db, settings, gateway, factory, fake_xendit):
    agent = await factory.agent()

    with pytest.raises(RegistrationError) as exc:
        await AgentRegistrationService(db, settings, gateway=gateway).register(
            agent.user_id, registration_request()
        )

    assert exc.value.status_code == 409
    assert fake_xendit.requests == []


async def test_blank_business_name_is_rejected(db, settings, gateway):
    request = AgentRegistrationCreate.model_construct(business_name="   ", payment_method="va_bca")

    with pytest.raises(RegistrationError) as exc:
        await AgentRegistrationService(db, settings, gateway=gateway).register(uuid.uuid4(), request)

    assert exc.value.status_code == 400


async def test_gateway_failure_discards_registration(db, settings, gateway, fake_xendit):
    user_id = uuid.uuid4()
    fake_xendit.fail_with = (503, {"error_code": "SERVICE_UNAVAILABLE", "message": "Bank is down"})

    with pytest.raises(PaymentGatewayError):
        await AgentRegistrationService(db, settings, gateway=gateway).register(
            user_id, registration_request()
        )

    assert await registrations_of(db, user_id) == []


def test_registration_reference_extraction():
    registration_id = uuid.uuid4()
    reference = f"AGENT-REG-{registration_id}"

    assert extract_registration_id({"external_id": reference}) == registration_id
    assert extract_registration_id({"data": {"reference_id": reference}}) == registration_id
    assert extract_registration_id({"qr_code": {"reference_id": reference}}) == registration_id
    assert extract_registration_id({"external_id": str(registration_id)}) is None
    assert extract_registration_id({"external_id": "AGENT-REG-not-a-uuid"}) is None

    assert is_registration_paid({"status": "SUCCEEDED"})
    assert is_registration_paid({"payment_id": "pay_1"})
    assert not is_registration_paid({"status": "PENDING"})
    assert not is_registration_paid({"status": "ACTIVE"})
    assert not is_registration_paid({"callback_virtual_account_id": "va_1", "status": "ACTIVE"})


async def test_webhook_marks_paid_without_creating_agent(db, settings, gateway):
    user_id = uuid.uuid4()
    service = AgentRegistrationService(db, settings, gateway=gateway)
    registration = await service.register(user_id, registration_request())

    result = await service.reconcile_payment(paid_callback(registration))
    assert result["message"] == "Registration paid"

    replay = await service.reconcile_payment(paid_callback(registration))
    assert replay["message"] == "Registration already paid"

    [stored] = await registrations_of(db, user_id)
    assert stored.status == RegistrationStatus.PAID.value
    assert stored.processed_at is not None

    agent = await db.execute(select(Agent).where(Agent.user_id == user_id))
    assert agent.scalar_one_or_none() is None

    registration_again, agent_row = await service.check_status(user_id)
    assert registration_again.id == registration.id
    assert agent_row is None


async def test_paid_registration_blocks_new_attempt(db, settings, gateway):
    user_id = uuid.uuid4()
    service = AgentRegistrationService(db, settings, gateway=gateway)
    registration = await service.register(user_id, registration_request())
    await service.reconcile_payment(paid_callback(registration))

    with pytest.raises(RegistrationError) as exc:
        await service.register(user_id, registration_request())

    assert exc.value.status_code == 409


async def test_webhook_for_unknown_registration_is_acknowledged(db, settings):
    result = await AgentRegistrationService(db, settings).reconcile_payment({
        "external_id": f"AGENT-REG-{uuid.uuid4()}",
        "status": "COMPLETED",
    })
    assert result == {"success": True, "message": "Registration not found"}


async def test_promotion_is_explicit_and_idempotent(db, settings, gateway):
    user_id = uuid.uuid4()
    admin_id = uuid.uuid4()
    service = AgentRegistrationService(db, settings, gateway=gateway)
    registration = await service.register(user_id, registration_request())
    await service.reconcile_payment(paid_callback(registration))

    agent = await service.promote_registration_to_agent(registration.id, processed_by=admin_id)

    assert agent.user_id == user_id
    assert agent.registration_status == AgentStatus.ACTIVE.value
    assert agent.max_events == settings.DEFAULT_MAX_EVENTS
    assert agent.bank_account_number == "1234567890"
    assert agent.registration_payment_id == registration.payment_id

    [stored] = await registrations_of(db, user_id)
    assert stored.status == RegistrationStatus.ACTIVE.value
    assert stored.processed_by == admin_id

    roles = await db.execute(select(UserRole.role).where(UserRole.user_id == user_id))
    assert roles.scalars().all() == [AppRole.AGENT.value]

    again = await service.promote_registration_to_agent(registration.id, processed_by=admin_id)
    assert again.id == agent.id
    count = await db.execute(select(Agent).where(Agent.user_id == user_id))
    assert len(count.scalars().all()) == 1


async def test_unpaid_registration_cannot_be_promoted(db, settings, gateway):
    service = AgentRegistrationService(db, settings, gateway=gateway)
    registration = await service.register(uuid.uuid4(), registration_request())

    with pytest.raises(RegistrationError) as exc:
        await service.promote_registration_to_agent(registration.id)

    assert exc.value.status_code == 409


async def test_unknown_registration_cannot_be_promoted(db, settings):
    with pytest.raises(RegistrationError) as exc:
        await AgentRegistrationService(db, settings).promote_registration_to_agent(uuid.uuid4())

    assert exc.value.status_code == 404


async def test_virtual_account_activation_leaves_registration_pending(db, settings, gateway):
    user_id = uuid.uuid4()
    service = AgentRegistrationService(db, settings, gateway=gateway)
    registration = await service.register(user_id, registration_request())

    result = await service.reconcile_payment({
        "id": "va_reg",
        "owner_id": "owner",
        "external_id": registration.reference,
        "bank_code": "BCA",
        "account_number": "107669999123456",
        "expected_amount": 500000,
        "is_closed": True,
        "status": "ACTIVE",
    })

    assert result["message"] == "No status change"
    [stored] = await registrations_of(db, user_id)
    assert stored.status == RegistrationStatus.PENDING.value

    with pytest.raises(RegistrationError) as exc:
        await service.promote_registration_to_agent(registration.id)
    assert exc.value.status_code == 409


async def test_fixed_va_payment_callback_marks_registration_paid(db, settings, gateway):
    user_id = uuid.uuid4()
    service = AgentRegistrationService(db, settings, gateway=gateway)
    registration = await service.register(user_id, registration_request())

    result = await service.reconcile_payment({
        "payment_id": "pay-reg-1",
        "callback_virtual_account_id": "va_reg",
        "external_id": registration.reference,
        "bank_code": "BCA",
        "amount": 500000,
    })

    assert result["message"] == "Registration paid"


async def test_concurrent_registration_is_rejected_by_the_database(
    db, settings, gateway, fake_xendit, monkeypatch
):
    user_id = uuid.uuid4()
    service = AgentRegistrationService(db, settings, gateway=gateway)
    first = await service.register(user_id, registration_request())

    # Second request read before the first one committed
    async def nothing_open(self, user_id):
        return None
    monkeypatch.setattr(AgentRegistrationService, "_open_registration", nothing_open)

    with pytest.raises(RegistrationError) as exc:
        await service.register(user_id, registration_request())

    assert exc.value.status_code == 409
    assert len(fake_xendit.requests) == 1
    assert [r.id for r in await registrations_of(db, user_id)] == [first.id]


async def test_one_open_registration_per_user_index(db):
    user_id = uuid.uuid4()
    for status in (RegistrationStatus.ACTIVE, RegistrationStatus.PENDING):
        db.add(AgentRegistration(
            user_id=user_id,
            business_name="Swara Kreatif",
            registration_fee=Decimal("500000"),
            status=status.value,
        ))
    await db.commit()

    db.add(AgentRegistration(
        user_id=user_id,
        business_name="Swara Kreatif",
        registration_fee=Decimal("500000"),
        status=RegistrationStatus.PAID.value,
    ))
    with pytest.raises(IntegrityError):
        await db.commit()
    await db.rollback()
