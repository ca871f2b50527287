"""Models package for database models."""

from billing.models.user import User
from billing.models.cash_track import CashTrack
from billing.models.catalog import ServiceDefinition, Product, Package
from billing.models.payment import Payment
from billing.models.order import Order
from billing.models.client_service import ClientService
from billing.models.maintenance import Project, Maintenance
from billing.models.notification import Notification

__all__ = [
    "User",
    "CashTrack",
    "ServiceDefinition",
    "Product",
    "Package",
    "Payment",
    "Order",
    "ClientService",
    "Project",
    "Maintenance",
    "Notification",
]
