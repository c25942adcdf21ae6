from typing import Annotated, Optional
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from luxetix.config import Settings, get_settings
from luxetix.database import get_db
from luxetix.core.security import AuthenticatedUser, verify_access_token
from luxetix.models.agent import Agent, AgentStatus
from luxetix.models.user import UserRole, AppRole
from luxetix.services.xendit_client import XenditClient


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme; optional so guest checkout can share it
security = HTTPBearer(auto_error=False)


DB = Annotated[AsyncSession, Depends(get_db)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_xendit_client(settings: SettingsDep) -> XenditClient:
    """Gateway client; overridden in tests with a mock transport."""
    return XenditClient(settings)


Gateway = Annotated[XenditClient, Depends(get_xendit_client)]


async def get_optional_user(
    settings: SettingsDep,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Optional[AuthenticatedUser]:
    """
    Current user when a valid bearer token is sent, else None.

    A token that is present but invalid is still rejected.
    """
    if credentials is None:
        return None

    user = verify_access_token(credentials.credentials, settings)
    if user is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_current_user(
    user: Annotated[Optional[AuthenticatedUser], Depends(get_optional_user)],
) -> AuthenticatedUser:
    """Dependency to get the current authenticated user."""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_admin_user(
    user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    db: DB,
) -> AuthenticatedUser:
    """Current user, who must hold the admin role."""
    result = await db.execute(
        select(UserRole.id).where(
            UserRole.user_id == user.id,
            UserRole.role == AppRole.ADMIN.value,
        )
    )
    if result.scalar_one_or_none() is None:
        logger.warning(f"User {user.id} denied admin access")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user


async def get_active_agent(
    user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    db: DB,
) -> Agent:
    """Agent row of the current user, which must be active."""
    result = await db.execute(select(Agent).where(Agent.user_id == user.id))
    agent = result.scalar_one_or_none()

    if agent is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not registered as an agent"
        )
    if agent.registration_status != AgentStatus.ACTIVE.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Agent account is {agent.registration_status}"
        )
    return agent


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
OptionalUser = Annotated[Optional[AuthenticatedUser], Depends(get_optional_user)]
AdminUser = Annotated[AuthenticatedUser, Depends(get_admin_user)]
ActiveAgent = Annotated[Agent, Depends(get_active_agent)]
