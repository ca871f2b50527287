"""FSM package for payment and subscription state management."""

from billing.fsm.states import (
    CashTrackKind,
    ClientServiceStatus,
    NotificationType,
    OrderItemType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    normalize_gateway_status,
)

__all__ = [
    "CashTrackKind",
    "ClientServiceStatus",
    "NotificationType",
    "OrderItemType",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "normalize_gateway_status",
]
