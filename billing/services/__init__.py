"""Services package."""

from billing.services.payment_service import PaymentService, PurchaseResult, PollResult
from billing.services.fulfillment_service import FulfillmentService
from billing.services.subscription_service import SubscriptionService
from billing.services.maintenance_service import MaintenanceService
from billing.services.billing_scheduler import BillingScheduler, JobResult
from billing.services.notification_service import NotificationService
from billing.services.email_service import EmailService
from billing.services.gateway import PaymentGateway, InitiationResult, GatewayStatus
from billing.services.paynow_service import PaynowGateway, get_gateway

__all__ = [
    "PaymentService",
    "PurchaseResult",
    "PollResult",
    "FulfillmentService",
    "SubscriptionService",
    "MaintenanceService",
    "BillingScheduler",
    "JobResult",
    "NotificationService",
    "EmailService",
    "PaymentGateway",
    "InitiationResult",
    "GatewayStatus",
    "PaynowGateway",
    "get_gateway",
]
