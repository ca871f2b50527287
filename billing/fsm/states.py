"""
State Definitions.
Payment, order and subscription states plus the gateway status taxonomy.
"""

from enum import Enum
from typing import Optional


class PaymentStatus(str, Enum):
    """
    Status of a payment attempt.
    PENDING -> PAID | FAILED, terminal once reached.
    """

    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class OrderStatus(str, Enum):
    """Status of the fulfillment record bound to a payment."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class OrderItemType(str, Enum):
    """Kinds of purchasable items."""

    SERVICE = "SERVICE"
    PRODUCT = "PRODUCT"
    PACKAGE = "PACKAGE"


class PaymentMethod(str, Enum):
    """Ways money can reach us."""

    PAYNOW_WEB = "PAYNOW_WEB"
    PAYNOW_ECOCASH = "PAYNOW_ECOCASH"
    PAYNOW_ONEMONEY = "PAYNOW_ONEMONEY"
    PAYNOW_INNBUCKS = "PAYNOW_INNBUCKS"
    PAYNOW_VISA = "PAYNOW_VISA"
    PAYNOW_MASTERCARD = "PAYNOW_MASTERCARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    CASH = "CASH"

    @property
    def display_name(self) -> str:
        """Display name for receipts and emails."""
        names = {
            self.PAYNOW_WEB: "Paynow",
            self.PAYNOW_ECOCASH: "EcoCash",
            self.PAYNOW_ONEMONEY: "OneMoney",
            self.PAYNOW_INNBUCKS: "InnBucks",
            self.PAYNOW_VISA: "Visa",
            self.PAYNOW_MASTERCARD: "Mastercard",
            self.BANK_TRANSFER: "Bank Transfer",
            self.CASH: "Cash",
        }
        return names.get(self, self.value)


class ClientServiceStatus(str, Enum):
    """
    Lifecycle of a client's subscription.

    PENDING_PAYMENT is only entered while a cash payment awaits admin
    confirmation. CANCELLED is terminal.
    """

    PENDING_PAYMENT = "PENDING_PAYMENT"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"


class CashTrackKind(str, Enum):
    """The two independent cash-payment tracks of a subscription."""

    ONE_OFF = "ONE_OFF"
    CURRENT_PERIOD = "CURRENT_PERIOD"


class NotificationType(str, Enum):
    """In-app notification categories."""

    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PAYMENT_DUE = "PAYMENT_DUE"
    BILLING_REMINDER = "BILLING_REMINDER"
    ORDER_FULFILLED = "ORDER_FULFILLED"
    SERVICE_ACTIVATED = "SERVICE_ACTIVATED"


# Gateway-reported statuses, lower-cased
GATEWAY_PAID_STATUSES = frozenset({"paid", "awaiting delivery", "delivered"})
GATEWAY_FAILED_STATUSES = frozenset({"failed", "cancelled"})


def normalize_gateway_status(raw: Optional[str]) -> PaymentStatus:
    """
    Map a gateway status string onto the ledger taxonomy.

    Anything not recognised as paid or failed leaves the payment PENDING.
    """
    status = (raw or "").strip().lower()
    if status in GATEWAY_PAID_STATUSES:
        return PaymentStatus.PAID
    if status in GATEWAY_FAILED_STATUSES:
        return PaymentStatus.FAILED
    return PaymentStatus.PENDING
