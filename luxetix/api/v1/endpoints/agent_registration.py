"""
Agent registration API endpoints.

Handles:
- Program terms (fee, event limits, commission)
- Paid registration with VA or QRIS
- Registration status
"""
import logging

from fastapi import APIRouter, HTTPException, status

from luxetix.api.deps import DB, SettingsDep, CurrentUser, Gateway
from luxetix.schemas.agent import (
    AgentSettingsResponse,
    AgentRegistrationCreate,
    AgentRegistrationResponse,
    AgentResponse,
    RegistrationStatusResponse,
)
from luxetix.services.agent_registration_service import AgentRegistrationService, RegistrationError
from luxetix.services.xendit_client import PaymentGatewayError

logger = logging.getLogger(__name__)


router = APIRouter(tags=["Agent Registration"])


@router.get(
    "/settings",
    response_model=AgentSettingsResponse,
    summary="Get agent program settings",
)
async def get_registration_settings(
    db: DB,
    settings: SettingsDep,
    user: CurrentUser,
):
    program = await AgentRegistrationService(db, settings).get_settings()
    return AgentSettingsResponse(
        registration_fee=program.registration_fee,
        default_max_events=program.default_max_events,
        max_events_before_auto_approve=program.max_events_before_auto_approve,
        platform_commission_percent=program.platform_commission_percent,
    )


@router.post(
    "/register",
    response_model=AgentRegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register as an agent",
    description="Create a pending registration and its registration fee payment (24 hour expiry)."
)
async def register_agent(
    data: AgentRegistrationCreate,
    db: DB,
    settings: SettingsDep,
    user: CurrentUser,
    gateway: Gateway,
):
    service = AgentRegistrationService(db, settings, gateway=gateway)
    try:
        registration = await service.register(user.id, data, email=user.email)
    except RegistrationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except PaymentGatewayError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail=f"Failed to create registration payment, please try again: {e.message}"
        )
    return AgentRegistrationResponse.model_validate(registration)


@router.get(
    "/status",
    response_model=RegistrationStatusResponse,
    summary="Get registration status",
)
async def get_registration_status(
    db: DB,
    settings: SettingsDep,
    user: CurrentUser,
):
    registration, agent = await AgentRegistrationService(db, settings).check_status(user.id)
    return RegistrationStatusResponse(
        registration=AgentRegistrationResponse.model_validate(registration) if registration else None,
        agent=AgentResponse.model_validate(agent) if agent else None,
    )
