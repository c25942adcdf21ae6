from fastapi import APIRouter

from luxetix.api.v1.endpoints import (
    # Ticket checkout
    checkout,
    payments,
    webhooks,
    # Agents
    agent_registration,
    agent,
    # Administration
    admin,
)

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Checkout & Payments ====================
api_router.include_router(
    checkout.router,
    prefix="/checkout",
)

api_router.include_router(
    payments.router,
    prefix="/payments",
)

# ==================== Xendit Webhooks (Public, token verified) ====================
api_router.include_router(
    webhooks.router,
    prefix="/webhooks",
)

# ==================== Agents ====================
api_router.include_router(
    agent_registration.router,
    prefix="/agent-registration",
)

api_router.include_router(
    agent.router,
    prefix="/agent",
)

# ==================== Administration ====================
api_router.include_router(
    admin.router,
    prefix="/admin",
)
