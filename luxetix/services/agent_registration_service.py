"""
Agent Registration Payment Flow.

Users pay a fixed registration fee (VA or QRIS) to become agents:
1. register() - creates a pending registration and its payment intent
2. reconcile_payment() - Xendit webhook moves it pending -> paid
3. promote_registration_to_agent() - an admin turns a paid registration
   into an active Agent and grants the agent role

Only one unexpired pending registration may exist per user; expired ones
are purged on the next attempt so the user can retry.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Dict, Any, Tuple

from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from luxetix.config import Settings
from luxetix.db_types import utc_now
from luxetix.models.agent import (
    Agent, AgentRegistration, AgentSettings,
    AgentStatus, RegistrationStatus, RegistrationPaymentMethod,
)
from luxetix.models.user import Profile, UserRole, AppRole
from luxetix.services.xendit_client import XenditClient, PaymentGatewayError

if TYPE_CHECKING:
    from luxetix.schemas.agent import AgentRegistrationCreate

logger = logging.getLogger(__name__)

AGENT_REGISTRATION_PREFIX = "AGENT-REG-"

# VA ACTIVE only means the account is open for payment
REGISTRATION_PAID_STATUSES = {"COMPLETED", "PAID", "SETTLED", "SUCCEEDED"}


class RegistrationError(Exception):
    """Agent registration rejected."""
    def __init__(self, message: str, status_code: int = 400, details: Dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


@dataclass
class RegistrationSettings:
    """Effective agent program settings."""
    registration_fee: Decimal
    default_max_events: int
    max_events_before_auto_approve: int
    platform_commission_percent: Decimal


def extract_registration_id(payload: Dict[str, Any]) -> Optional[uuid.UUID]:
    """Registration id from an AGENT-REG-<uuid> reference, or None."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    qr_code = payload.get("qr_code") if isinstance(payload.get("qr_code"), dict) else {}

    reference = (
        payload.get("external_id")
        or data.get("external_id")
        or payload.get("reference_id")
        or data.get("reference_id")
        or qr_code.get("reference_id")
    )
    if not reference or not str(reference).startswith(AGENT_REGISTRATION_PREFIX):
        return None
    try:
        return uuid.UUID(str(reference)[len(AGENT_REGISTRATION_PREFIX):])
    except ValueError:
        return None


def is_registration_paid(payload: Dict[str, Any]) -> bool:
    """A paid status, or a VA payment callback (it carries payment_id and no status)."""
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    status = payload.get("status") or data.get("status")
    if status and str(status).upper() in REGISTRATION_PAID_STATUSES:
        return True
    return bool(payload.get("payment_id"))


class AgentRegistrationService:
    """Service for paid agent registration."""

    def __init__(self, db: AsyncSession, settings: Settings, gateway: Optional[XenditClient] = None):
        self.db = db
        self.settings = settings
        self.gateway = gateway or XenditClient(settings)

    async def get_settings(self) -> RegistrationSettings:
        """Agent settings row, falling back to configured defaults."""
        result = await self.db.execute(
            select(AgentSettings).order_by(AgentSettings.created_at).limit(1)
        )
        row = result.scalar_one_or_none()
        if not row:
            return RegistrationSettings(
                registration_fee=Decimal(self.settings.DEFAULT_REGISTRATION_FEE),
                default_max_events=self.settings.DEFAULT_MAX_EVENTS,
                max_events_before_auto_approve=3,
                platform_commission_percent=Decimal(str(self.settings.DEFAULT_COMMISSION_PERCENT)),
            )
        return RegistrationSettings(
            registration_fee=Decimal(row.registration_fee or self.settings.DEFAULT_REGISTRATION_FEE),
            default_max_events=row.default_max_events or self.settings.DEFAULT_MAX_EVENTS,
            max_events_before_auto_approve=row.max_events_before_auto_approve,
            platform_commission_percent=Decimal(row.platform_commission_percent),
        )

    async def register(
        self,
        user_id: uuid.UUID,
        data: "AgentRegistrationCreate",
        email: Optional[str] = None
    ) -> AgentRegistration:
        """
        Start a registration and create its payment intent.

        The registration row and the intent are committed together; if
        the gateway fails the registration is discarded.
        """
        business_name = (data.business_name or "").strip()
        if not business_name:
            raise RegistrationError("Business name is required", status_code=400)

        agent = await self._get_agent(user_id)
        if agent and agent.registration_status == AgentStatus.ACTIVE.value:
            raise RegistrationError("You are already an active agent", status_code=409)

        now = utc_now()

        # Purge expired pending registrations so the user can retry
        purged = await self.db.execute(
            delete(AgentRegistration)
            .where(
                AgentRegistration.user_id == user_id,
                AgentRegistration.status == RegistrationStatus.PENDING.value,
                AgentRegistration.expires_at < now,
            )
            .execution_options(synchronize_session=False)
        )
        if purged.rowcount:
            logger.info(f"Purged {purged.rowcount} expired registrations for user {user_id}")

        open_registration = await self._open_registration(user_id)
        if open_registration:
            if open_registration.status == RegistrationStatus.PAID.value:
                raise RegistrationError(
                    "Registration is already paid and awaiting activation", status_code=409
                )
            raise RegistrationError(
                "You already have a pending registration, complete its payment first",
                status_code=409,
                details={"registration_id": str(open_registration.id)},
            )

        program = await self.get_settings()
        method = RegistrationPaymentMethod(data.payment_method)
        expires_at = now + timedelta(hours=self.settings.AGENT_REGISTRATION_EXPIRY_HOURS)

        registration = AgentRegistration(
            id=uuid.uuid4(),
            user_id=user_id,
            business_name=business_name,
            business_description=data.business_description,
            bank_name=data.bank_name,
            bank_account_number=data.bank_account_number,
            bank_account_name=data.bank_account_name,
            registration_fee=program.registration_fee,
            payment_method=method.value,
            expires_at=expires_at,
            status=RegistrationStatus.PENDING.value,
        )
        self.db.add(registration)
        try:
            await self.db.flush()
        except IntegrityError:
            # A concurrent request opened a registration for this user first
            await self.db.rollback()
            logger.warning(f"Concurrent registration attempt for user {user_id} rejected")
            raise RegistrationError(
                "You already have a pending registration, complete its payment first",
                status_code=409,
            )

        payer_name = await self._payer_name(user_id, email)

        try:
            if method == RegistrationPaymentMethod.QRIS:
                intent = await self.gateway.create_qr_code(
                    reference_id=registration.reference,
                    amount=program.registration_fee,
                    expires_at=expires_at,
                )
            else:
                intent = await self.gateway.create_virtual_account(
                    external_id=registration.reference,
                    bank_code=method.value.replace("va_", "").upper(),
                    name=payer_name,
                    expected_amount=program.registration_fee,
                    expires_at=expires_at,
                )
        except PaymentGatewayError as e:
            await self.db.rollback()
            logger.error(f"Registration payment failed for user {user_id}: {e.message}")
            raise

        registration.payment_id = intent.provider_id
        registration.payment_data = intent.to_payment_data()
        await self.db.commit()

        logger.info(
            f"Agent registration {registration.id} created for user {user_id}, "
            f"fee {program.registration_fee} via {method.value}"
        )
        return registration

    async def check_status(
        self,
        user_id: uuid.UUID
    ) -> Tuple[Optional[AgentRegistration], Optional[Agent]]:
        """Latest registration and the agent row, if any."""
        result = await self.db.execute(
            select(AgentRegistration)
            .where(AgentRegistration.user_id == user_id)
            .order_by(AgentRegistration.created_at.desc())
            .limit(1)
        )
        registration = result.scalar_one_or_none()
        agent = await self._get_agent(user_id)
        return registration, agent

    async def reconcile_payment(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Handle a registration payment webhook.

        A paid callback moves the registration pending -> paid. The Agent
        row is created later by promote_registration_to_agent().
        """
        registration_id = extract_registration_id(payload)
        if not registration_id:
            logger.info("Not an agent registration webhook, ignoring")
            return {"success": True, "message": "Not an agent registration"}

        paid = is_registration_paid(payload)
        logger.info(f"Agent registration webhook for {registration_id}, paid: {paid}")
        if not paid:
            return {"success": True, "message": "No status change"}

        result = await self.db.execute(
            update(AgentRegistration)
            .where(
                AgentRegistration.id == registration_id,
                AgentRegistration.status == RegistrationStatus.PENDING.value,
            )
            .values(status=RegistrationStatus.PAID.value, processed_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        if result.rowcount == 1:
            logger.info(f"Agent registration {registration_id} marked paid")
            return {"success": True, "message": "Registration paid", "registration_id": str(registration_id)}

        registration = await self._get_registration(registration_id)
        if not registration:
            logger.warning(f"Webhook for unknown agent registration {registration_id}, ignored")
            return {"success": True, "message": "Registration not found"}

        logger.info(f"Agent registration {registration_id} already {registration.status}")
        return {
            "success": True,
            "message": f"Registration already {registration.status}",
            "registration_id": str(registration_id),
        }

    async def promote_registration_to_agent(
        self,
        registration_id: uuid.UUID,
        processed_by: Optional[uuid.UUID] = None
    ) -> Agent:
        """
        Turn a paid registration into an active agent.

        Idempotent: promoting an already active registration returns the
        existing agent.
        """
        registration = await self._get_registration(registration_id)
        if not registration:
            raise RegistrationError("Registration not found", status_code=404)

        if registration.status == RegistrationStatus.ACTIVE.value:
            agent = await self._get_agent(registration.user_id)
            if agent:
                return agent
            raise RegistrationError("Registration is active but has no agent", status_code=409)

        if registration.status != RegistrationStatus.PAID.value:
            raise RegistrationError("Registration fee has not been paid", status_code=409)

        program = await self.get_settings()
        now = utc_now()

        agent = await self._get_agent(registration.user_id)
        if agent:
            agent.business_name = registration.business_name
            agent.business_description = registration.business_description
            agent.bank_name = registration.bank_name
            agent.bank_account_number = registration.bank_account_number
            agent.bank_account_name = registration.bank_account_name
            agent.registration_status = AgentStatus.ACTIVE.value
            agent.registration_payment_id = registration.payment_id
        else:
            agent = Agent(
                user_id=registration.user_id,
                business_name=registration.business_name,
                business_description=registration.business_description,
                bank_name=registration.bank_name,
                bank_account_number=registration.bank_account_number,
                bank_account_name=registration.bank_account_name,
                max_events=program.default_max_events,
                registration_status=AgentStatus.ACTIVE.value,
                registration_payment_id=registration.payment_id,
            )
            self.db.add(agent)

        await self._grant_agent_role(registration.user_id)

        result = await self.db.execute(
            update(AgentRegistration)
            .where(
                AgentRegistration.id == registration.id,
                AgentRegistration.status == RegistrationStatus.PAID.value,
            )
            .values(
                status=RegistrationStatus.ACTIVE.value,
                processed_at=now,
                processed_by=processed_by,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            logger.info(f"Registration {registration_id} was promoted concurrently")
            existing = await self._get_agent(registration.user_id)
            if existing:
                return existing
            raise RegistrationError("Registration could not be promoted, try again", status_code=409)

        await self.db.commit()
        logger.info(f"Registration {registration_id} promoted: user {registration.user_id} is now an agent")
        return agent

    # ==================== HELPERS ====================

    async def _open_registration(self, user_id: uuid.UUID) -> Optional[AgentRegistration]:
        result = await self.db.execute(
            select(AgentRegistration).where(
                AgentRegistration.user_id == user_id,
                AgentRegistration.status.in_([
                    RegistrationStatus.PENDING.value,
                    RegistrationStatus.PAID.value,
                ]),
            )
        )
        return result.scalars().first()

    async def _get_agent(self, user_id: uuid.UUID) -> Optional[Agent]:
        result = await self.db.execute(
            select(Agent)
            .where(Agent.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_registration(self, registration_id: uuid.UUID) -> Optional[AgentRegistration]:
        result = await self.db.execute(
            select(AgentRegistration)
            .where(AgentRegistration.id == registration_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _grant_agent_role(self, user_id: uuid.UUID) -> None:
        result = await self.db.execute(
            select(UserRole).where(
                UserRole.user_id == user_id,
                UserRole.role == AppRole.AGENT.value,
            )
        )
        if result.scalar_one_or_none() is None:
            self.db.add(UserRole(user_id=user_id, role=AppRole.AGENT.value))

    async def _payer_name(self, user_id: uuid.UUID, email: Optional[str]) -> str:
        """Profile name, else the email local part, else 'Agent'."""
        result = await self.db.execute(
            select(Profile.full_name).where(Profile.user_id == user_id)
        )
        full_name = result.scalar_one_or_none()
        if full_name:
            return full_name
        if email:
            return email.split("@")[0]
        return "Agent"
