"""
Fulfillment Service - binds a paid Payment to what it bought.

Runs inside the ledger's reconciliation transaction, so it is reached at
most once per payment: only on the first PENDING -> PAID transition. The
receipt email is handed back to the caller and sent after the commit.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from billing.config import settings
from billing.exceptions import InvalidTransitionError, ProvisioningError
from billing.fsm.machine import ClientServiceMachine
from billing.fsm.states import (
    ClientServiceStatus,
    NotificationType,
    OrderItemType,
    OrderStatus,
)
from billing.models.catalog import Package, Product
from billing.models.client_service import ClientService
from billing.models.order import Order
from billing.models.payment import Payment
from billing.models.user import User
from billing.services.email_service import PendingEmail, format_money, render_email
from billing.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceItem:
    client_service_id: uuid.UUID


@dataclass(frozen=True)
class ProductItem:
    product_id: uuid.UUID


@dataclass(frozen=True)
class PackageItem:
    package_id: uuid.UUID


FulfillmentItem = Union[ServiceItem, ProductItem, PackageItem]


def item_for_order(order: Order) -> FulfillmentItem:
    """Closed mapping from an order row onto its item variant."""
    item_type = OrderItemType(order.item_type)
    if item_type is OrderItemType.SERVICE:
        return ServiceItem(order.item_id)
    if item_type is OrderItemType.PRODUCT:
        return ProductItem(order.item_id)
    if item_type is OrderItemType.PACKAGE:
        return PackageItem(order.item_id)
    raise ValueError(f"Unknown order item type: {order.item_type}")


class FulfillmentService:
    """Order fulfillment linker."""

    def __init__(self, db: AsyncSession, notifications: NotificationService):
        self.db = db
        self.notifications = notifications

    async def get_order_for_payment(self, payment_id: uuid.UUID) -> Optional[Order]:
        result = await self.db.execute(
            select(Order).where(Order.payment_id == payment_id)
        )
        return result.scalar_one_or_none()

    async def fulfill(self, payment: Payment) -> Optional[PendingEmail]:
        """
        Complete the order and provision its item.

        A provisioning error leaves the order COMPLETED with no
        `provisioned_at`: money was received, an operator must follow up.
        Returns the receipt email, or None when there is nothing to send.
        """
        order = await self.get_order_for_payment(payment.id)
        if not order:
            logger.warning(f"No order found for payment {payment.reference}")
            return None

        order.status = OrderStatus.COMPLETED.value

        item_name: Optional[str] = None
        try:
            item_name = await self._provision(item_for_order(order), order)
            order.provisioned_at = datetime.now(timezone.utc)
        except ProvisioningError as e:
            logger.warning(
                f"Reconciliation gap: order {order.reference} paid but not provisioned: {e}",
                extra={"reference": order.reference},
            )

        receipt = await self._prepare_receipt(order, payment, item_name or "your order")

        logger.info(f"Order {order.reference} completed ({order.item_type})")
        return receipt

    async def fail(self, payment: Payment) -> Optional[Order]:
        """Mark the order FAILED. Nothing is provisioned and no receipt is sent."""
        order = await self.get_order_for_payment(payment.id)
        if not order:
            logger.warning(f"No order found for failed payment {payment.reference}")
            return None

        order.status = OrderStatus.FAILED.value
        logger.info(f"Order {order.reference} failed")
        return order

    async def _provision(self, item: FulfillmentItem, order: Order) -> str:
        """Dispatch on the item variant. Returns the item's display name."""
        if isinstance(item, ServiceItem):
            return await self._provision_service(item, order)
        if isinstance(item, ProductItem):
            return await self._deliver_catalog_item(Product, item.product_id, order)
        if isinstance(item, PackageItem):
            return await self._deliver_catalog_item(Package, item.package_id, order)
        raise TypeError(f"Unhandled fulfillment item: {item!r}")

    async def _provision_service(self, item: ServiceItem, order: Order) -> str:
        """Payment unlocks a ClientService that already exists."""
        result = await self.db.execute(
            select(ClientService)
            .where(ClientService.id == item.client_service_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        service = result.scalar_one_or_none()
        if not service:
            raise ProvisioningError(f"Client service {item.client_service_id} not found")
        if service.user_id != order.user_id:
            raise ProvisioningError(f"Client service {service.id} belongs to another user")

        try:
            ClientServiceMachine(service).apply_gateway_payment()
        except InvalidTransitionError as e:
            raise ProvisioningError(str(e)) from e

        name = service.service_definition.name
        if service.status == ClientServiceStatus.ACTIVE.value:
            await self.notifications.notify(
                service.user_id,
                NotificationType.SERVICE_ACTIVATED,
                "Service Activated",
                f"Your subscription for {name} is now active.",
            )
        logger.info(f"Service {name} unlocked for user {service.user_id} (status={service.status})")
        return name

    async def _deliver_catalog_item(self, model, item_id: uuid.UUID, order: Order) -> str:
        row = await self.db.get(model, item_id)
        if not row:
            raise ProvisioningError(f"{model.__name__} {item_id} not found")

        await self.notifications.notify(
            order.user_id,
            NotificationType.ORDER_FULFILLED,
            "Purchase Confirmed",
            f"Your purchase of {row.name} (x{order.quantity}) is confirmed.",
        )
        return row.name

    async def _prepare_receipt(self, order: Order, payment: Payment, item_name: str) -> Optional[PendingEmail]:
        """Receipt notification now, receipt email for after the commit."""
        amount_text = format_money(payment.amount, payment.currency)
        await self.notifications.notify(
            order.user_id,
            NotificationType.PAYMENT_RECEIVED,
            "Payment Received",
            f"We received {amount_text} for {item_name}. Reference: {payment.reference}",
        )

        try:
            user = await self.db.get(User, order.user_id)
            if not user:
                logger.warning(f"No user {order.user_id} for receipt {payment.reference}")
                return None
            html = render_email(
                "receipt.html",
                name=user.display_name,
                item_name=item_name,
                reference=payment.reference,
                external_reference=payment.external_transaction_id,
                quantity=order.quantity,
                amount=payment.amount,
                currency=payment.currency or settings.default_currency,
            )
        except Exception as e:
            logger.warning(f"Failed to prepare receipt for {payment.reference}: {e}")
            return None

        return PendingEmail(user.email, f"Payment Receipt - {payment.reference}", html)
