# Services module
from luxetix.services.xendit_client import XenditClient, PaymentIntent, PaymentGatewayError, XenditAPIError
from luxetix.services.order_service import OrderService, CheckoutError
from luxetix.services.payment_service import PaymentService, PaymentError
from luxetix.services.ticket_service import TicketService, TicketValidationError
from luxetix.services.webhook_service import WebhookReconciler, WebhookAuthError, classify_webhook

# Agent ledger
from luxetix.services.agent_registration_service import AgentRegistrationService, RegistrationError
from luxetix.services.agent_earnings_service import AgentEarningsService
from luxetix.services.ledger import calculate_balance, BalanceSummary
from luxetix.services.withdrawal_service import WithdrawalService, WithdrawalError

__all__ = [
    "XenditClient",
    "PaymentIntent",
    "PaymentGatewayError",
    "XenditAPIError",
    "OrderService",
    "CheckoutError",
    "PaymentService",
    "PaymentError",
    "TicketService",
    "TicketValidationError",
    "WebhookReconciler",
    "WebhookAuthError",
    "classify_webhook",
    # Agent ledger
    "AgentRegistrationService",
    "RegistrationError",
    "AgentEarningsService",
    "calculate_balance",
    "BalanceSummary",
    "WithdrawalService",
    "WithdrawalError",
]
