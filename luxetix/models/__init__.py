# Models module - importing registers every table with Base.metadata
from luxetix.models.agent import (
    Agent, AgentRegistration, AgentSettings, AgentPayment,
    AgentStatus, RegistrationStatus, RegistrationPaymentMethod, AgentPaymentStatus,
)
from luxetix.models.concert import Concert, TicketType
from luxetix.models.order import Order, OrderItem, OrderStatus, PaymentMethod
from luxetix.models.user import Profile, UserRole, AppRole
from luxetix.models.withdrawal import Withdrawal, WithdrawalStatus

__all__ = [
    "Agent",
    "AgentRegistration",
    "AgentSettings",
    "AgentPayment",
    "AgentStatus",
    "RegistrationStatus",
    "RegistrationPaymentMethod",
    "AgentPaymentStatus",
    "Concert",
    "TicketType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentMethod",
    "Profile",
    "UserRole",
    "AppRole",
    "Withdrawal",
    "WithdrawalStatus",
]
