"""Pytest configuration and shared fixtures."""
import json
import os
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

# Settings are read once at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-for-luxetix")
os.environ.setdefault("XENDIT_SECRET_KEY", "xnd_development_test_key")
os.environ.setdefault("XENDIT_CALLBACK_TOKEN", "test-callback-token")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from luxetix.config import get_settings
from luxetix.core.security import create_access_token
from luxetix.database import Base, build_engine, get_db
from luxetix.db_types import utc_now
from luxetix.models import (
    Agent, AgentStatus, AppRole, Concert, Order, OrderItem, OrderStatus,
    TicketType, UserRole,
)
from luxetix.services.xendit_client import XenditClient

CALLBACK_TOKEN = "test-callback-token"


class FakeXendit:
    """
    httpx.MockTransport handler answering like the Xendit API.

    Requests are recorded; set fail_with = (status_code, body) to make
    every call fail.
    """

    def __init__(self):
        self.requests = []
        self.fail_with = None

    @property
    def last_body(self) -> dict:
        return json.loads(self.requests[-1].content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with:
            status_code, body = self.fail_with
            return httpx.Response(status_code, json=body)

        body = json.loads(request.content) if request.content else {}
        path = request.url.path

        if path == "/callback_virtual_accounts":
            return httpx.Response(200, json={
                "id": f"va_{uuid.uuid4().hex[:12]}",
                "external_id": body["external_id"],
                "owner_id": "5f2b2c4e0c2a1e0e0c2a1e0e",
                "bank_code": body["bank_code"],
                "merchant_code": "10766",
                "account_number": "107669999123456",
                "name": body["name"],
                "expected_amount": body["expected_amount"],
                "is_closed": True,
                "is_single_use": True,
                "status": "PENDING",
                "expiration_date": body["expiration_date"],
            })

        if path == "/ewallets/charges":
            return httpx.Response(202, json={
                "id": f"ewc_{uuid.uuid4().hex[:12]}",
                "reference_id": body["reference_id"],
                "status": "PENDING",
                "currency": "IDR",
                "charge_amount": body["amount"],
                "channel_code": body["channel_code"],
                "actions": {
                    "desktop_web_checkout_url": "https://ewallet-mock.xendit.co/desktop",
                    "mobile_web_checkout_url": "https://ewallet-mock.xendit.co/mobile",
                    "mobile_deeplink_checkout_url": None,
                },
            })

        if path == "/qr_codes":
            return httpx.Response(201, json={
                "id": f"qr_{uuid.uuid4().hex[:12]}",
                "reference_id": body["reference_id"],
                "type": "DYNAMIC",
                "currency": "IDR",
                "amount": body["amount"],
                "qr_string": "00020101021226660014ID.LINKAJA.WWW",
                "status": "ACTIVE",
                "expires_at": body["expires_at"],
            })

        return httpx.Response(404, json={"error_code": "NOT_FOUND", "message": "Endpoint not found"})


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_xendit():
    return FakeXendit()


@pytest.fixture
def gateway(settings, fake_xendit):
    return XenditClient(settings, transport=httpx.MockTransport(fake_xendit))


@pytest.fixture
async def client(session_factory, gateway):
    from luxetix.api.deps import get_xendit_client
    from luxetix.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_xendit_client] = lambda: gateway

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(settings):
    """Build Authorization headers for a user id."""
    def _headers(user_id: uuid.UUID, email: Optional[str] = None) -> dict:
        token = create_access_token(user_id, settings, email=email)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def webhook_headers():
    return {"x-callback-token": CALLBACK_TOKEN}


class Factory:
    """Seeds rows straight into the test database."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def concert(self, agent: Optional[Agent] = None, **kwargs) -> Concert:
        concert = Concert(
            title=kwargs.get("title", "Senandung Senja"),
            artist=kwargs.get("artist", "Nadin Amizah"),
            venue=kwargs.get("venue", "Istora Senayan"),
            city=kwargs.get("city", "Jakarta"),
            event_date=kwargs.get("event_date", date(2026, 12, 12)),
            agent_id=agent.id if agent else None,
        )
        self.db.add(concert)
        await self.db.commit()
        return concert

    async def ticket_type(
        self,
        concert: Optional[Concert] = None,
        price=100000,
        total: int = 10,
        available: Optional[int] = None,
        name: str = "Festival",
    ) -> TicketType:
        concert = concert or await self.concert()
        ticket_type = TicketType(
            concert_id=concert.id,
            name=name,
            price=Decimal(str(price)),
            total_quantity=total,
            available_quantity=total if available is None else available,
        )
        self.db.add(ticket_type)
        await self.db.commit()
        return ticket_type

    async def order(
        self,
        ticket_types,
        quantity: int = 1,
        status: OrderStatus = OrderStatus.PENDING,
        user_id: Optional[uuid.UUID] = None,
        expires_in: timedelta = timedelta(minutes=5),
    ) -> Order:
        """Order with one item per ticket type; inventory is not touched."""
        items = []
        total = Decimal("0")
        for ticket_type in ticket_types:
            subtotal = Decimal(ticket_type.price) * quantity
            total += subtotal
            items.append(OrderItem(
                ticket_type_id=ticket_type.id,
                concert_id=ticket_type.concert_id,
                quantity=quantity,
                unit_price=Decimal(ticket_type.price),
                subtotal=subtotal,
            ))

        order = Order(
            order_number=f"LTX-TEST-{uuid.uuid4().hex[:8].upper()}",
            user_id=user_id,
            status=status.value,
            total_amount=total,
            customer_name="Budi Santoso",
            customer_email="buyer@luxetix.id",
            customer_phone="081234567890",
            expires_at=utc_now() + expires_in,
            items=items,
        )
        self.db.add(order)
        await self.db.commit()
        return order

    async def agent(
        self,
        user_id: Optional[uuid.UUID] = None,
        total_earnings=0,
        total_commission_paid=0,
        status: AgentStatus = AgentStatus.ACTIVE,
        with_bank: bool = True,
    ) -> Agent:
        agent = Agent(
            user_id=user_id or uuid.uuid4(),
            business_name="Swara Kreatif",
            registration_status=status.value,
            total_earnings=Decimal(str(total_earnings)),
            total_commission_paid=Decimal(str(total_commission_paid)),
            bank_name="BCA" if with_bank else None,
            bank_account_number="1234567890" if with_bank else None,
            bank_account_name="PT Swara Kreatif" if with_bank else None,
        )
        self.db.add(agent)
        await self.db.commit()
        return agent

    async def admin(self, user_id: Optional[uuid.UUID] = None) -> uuid.UUID:
        user_id = user_id or uuid.uuid4()
        self.db.add(UserRole(user_id=user_id, role=AppRole.ADMIN.value))
        await self.db.commit()
        return user_id


@pytest.fixture
def factory(db):
    return Factory(db)
