"""
Tests for order fulfillment after a payment settles.
"""

import uuid

import pytest
from sqlalchemy import select

from billing.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from billing.fsm.states import (
    ClientServiceStatus,
    NotificationType,
    OrderItemType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from billing.models.notification import Notification
from billing.models.order import Order
from billing.models.user import User
from billing.services.fulfillment_service import (
    PackageItem,
    ProductItem,
    ServiceItem,
    item_for_order,
)
from billing.services.payment_service import PaymentService


async def notifications_for(db, user_id):
    result = await db.execute(select(Notification).where(Notification.user_id == user_id))
    return list(result.scalars().all())


async def order_for(db, payment_id) -> Order:
    result = await db.execute(select(Order).where(Order.payment_id == payment_id))
    return result.scalar_one()


def test_item_for_order_variants():
    item_id = uuid.uuid4()

    assert item_for_order(Order(item_type="SERVICE", item_id=item_id)) == ServiceItem(item_id)
    assert item_for_order(Order(item_type="PRODUCT", item_id=item_id)) == ProductItem(item_id)
    assert item_for_order(Order(item_type="PACKAGE", item_id=item_id)) == PackageItem(item_id)
    with pytest.raises(ValueError):
        item_for_order(Order(item_type="GIFT_CARD", item_id=item_id))


@pytest.mark.asyncio
async def test_product_purchase_is_fulfilled(db, user, product, gateway, email):
    service = PaymentService(db, gateway, email=email)
    result = await service.initiate_purchase(user.id, OrderItemType.PRODUCT, product.id, amount=5000, quantity=2)

    await service.reconcile(result.reference, PaymentStatus.PAID)

    order = await order_for(db, result.payment_id)
    assert order.status == OrderStatus.COMPLETED.value
    assert order.quantity == 2
    assert order.provisioned_at is not None

    types = {n.type for n in await notifications_for(db, user.id)}
    assert types == {NotificationType.ORDER_FULFILLED.value, NotificationType.PAYMENT_RECEIVED.value}
    assert "SSL Certificate" in email.sent[0]["html"]


@pytest.mark.asyncio
async def test_package_purchase_is_fulfilled(db, user, package, gateway, email):
    service = PaymentService(db, gateway, email=email)
    result = await service.initiate_purchase(user.id, OrderItemType.PACKAGE, package.id, amount=9900)

    await service.reconcile(result.reference, PaymentStatus.PAID)

    order = await order_for(db, result.payment_id)
    assert order.status == OrderStatus.COMPLETED.value
    assert order.provisioned_at is not None


@pytest.mark.asyncio
async def test_missing_item_leaves_reconciliation_gap(db, user, gateway, email):
    """Money received for an item that no longer exists stays PAID for follow-up."""
    service = PaymentService(db, gateway, email=email)
    payment = await service.create_pending_payment(
        user.id, 2500, "USD", PaymentMethod.PAYNOW_WEB, "CVT-1-gap"
    )
    db.add(Order(
        user_id=user.id,
        item_type=OrderItemType.PRODUCT.value,
        item_id=uuid.uuid4(),
        quantity=1,
        amount=2500,
        payment_id=payment.id,
        reference=payment.reference,
        status=OrderStatus.PENDING.value,
    ))
    await db.commit()

    reconciled = await service.reconcile("CVT-1-gap", PaymentStatus.PAID)

    assert reconciled.status == PaymentStatus.PAID.value
    order = await order_for(db, payment.id)
    assert order.status == OrderStatus.COMPLETED.value
    assert order.provisioned_at is None
    # Receipt still goes out: the client did pay
    assert len(email.sent) == 1


@pytest.mark.asyncio
async def test_payment_without_order_settles(db, user, gateway, email):
    service = PaymentService(db, gateway, email=email)
    await service.create_pending_payment(user.id, 1000, "USD", PaymentMethod.PAYNOW_WEB, "CVT-1-orphan")
    await db.commit()

    payment = await service.reconcile("CVT-1-orphan", PaymentStatus.PAID)

    assert payment.status == PaymentStatus.PAID.value
    assert email.sent == []


@pytest.mark.asyncio
async def test_cancelled_service_is_not_reactivated(db, user, client_service, gateway, email):
    service = PaymentService(db, gateway, email=email)
    result = await service.initiate_purchase(user.id, OrderItemType.SERVICE, client_service.id, amount=1500)

    client_service.status = ClientServiceStatus.CANCELLED.value
    await db.commit()

    await service.reconcile(result.reference, PaymentStatus.PAID)

    assert client_service.status == ClientServiceStatus.CANCELLED.value
    order = await order_for(db, result.payment_id)
    assert order.status == OrderStatus.COMPLETED.value
    assert order.provisioned_at is None


@pytest.mark.asyncio
async def test_suspended_service_stays_suspended(db, user, client_service, gateway):
    service = PaymentService(db, gateway)
    result = await service.initiate_purchase(user.id, OrderItemType.SERVICE, client_service.id, amount=1500)

    client_service.status = ClientServiceStatus.SUSPENDED.value
    await db.commit()

    await service.reconcile(result.reference, PaymentStatus.PAID)

    assert client_service.status == ClientServiceStatus.SUSPENDED.value
    assert client_service.one_off_price_paid is True


@pytest.mark.asyncio
async def test_inactive_product_cannot_be_bought(db, user, product, gateway):
    product.is_active = False
    await db.commit()
    service = PaymentService(db, gateway)

    with pytest.raises(NotFoundError):
        await service.initiate_purchase(user.id, OrderItemType.PRODUCT, product.id, amount=2500)

    assert gateway.initiated == []


@pytest.mark.asyncio
async def test_cannot_pay_for_someone_elses_service(db, client_service, gateway):
    other = User(email="other@example.com")
    db.add(other)
    await db.commit()
    service = PaymentService(db, gateway)

    with pytest.raises(PermissionDeniedError):
        await service.initiate_purchase(other.id, OrderItemType.SERVICE, client_service.id, amount=1500)


@pytest.mark.asyncio
async def test_cannot_pay_for_cancelled_service(db, user, client_service, gateway):
    client_service.status = ClientServiceStatus.CANCELLED.value
    await db.commit()
    service = PaymentService(db, gateway)

    with pytest.raises(ValidationError):
        await service.initiate_purchase(user.id, OrderItemType.SERVICE, client_service.id, amount=1500)
