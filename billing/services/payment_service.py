"""
Payment Service - gateway payment processing and ledger management.
"""

import logging
import secrets
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from billing.config import settings
from billing.exceptions import (
    DuplicateReferenceError,
    GatewayError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from billing.fsm.states import (
    ClientServiceStatus,
    OrderItemType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    normalize_gateway_status,
)
from billing.models.catalog import Package, Product
from billing.models.client_service import ClientService
from billing.models.order import Order
from billing.models.payment import Payment
from billing.models.user import User
from billing.services.email_service import EmailService, send_pending
from billing.services.fulfillment_service import FulfillmentService
from billing.services.gateway import GatewayStatus, PaymentGateway
from billing.services.notification_service import NotificationService
from billing.services.paynow_service import verify_paynow_hash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchaseResult:
    """Structured outcome of starting a purchase."""

    success: bool
    payment_id: Optional[uuid.UUID] = None
    reference: Optional[str] = None
    redirect_url: Optional[str] = None
    poll_handle: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class PollResult:
    """Outcome of a client-driven status poll."""

    status: str
    paid: bool
    payment_status: Optional[PaymentStatus] = None
    amount: Optional[int] = None
    reference: Optional[str] = None


class PaymentService:
    """
    Payment ledger.

    The Payment row, keyed by its unique reference, is the serialisation
    point for reconciliation: every status change happens under a row lock
    and terminal payments are never touched again.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        notifications: Optional[NotificationService] = None,
        email: Optional[EmailService] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.email = email or EmailService()
        self.fulfillment = FulfillmentService(db, notifications or NotificationService(db))

    @staticmethod
    def generate_reference(user_id: uuid.UUID) -> str:
        """Fresh, collision-resistant merchant reference for one attempt."""
        millis = int(time.time() * 1000)
        return f"CVT-{millis}-{str(user_id)[-6:]}-{secrets.token_hex(3).upper()}"

    async def get_payment(self, payment_id: uuid.UUID) -> Optional[Payment]:
        return await self.db.get(Payment, payment_id)

    async def get_payment_by_reference(self, reference: str) -> Optional[Payment]:
        result = await self.db.execute(
            select(Payment).where(Payment.reference == reference)
        )
        return result.scalar_one_or_none()

    async def get_payment_by_poll_handle(self, poll_handle: str) -> Optional[Payment]:
        result = await self.db.execute(
            select(Payment).where(Payment.poll_handle == poll_handle)
        )
        return result.scalar_one_or_none()

    async def get_payment_history(self, user_id: uuid.UUID, limit: int = 50) -> List[Payment]:
        result = await self.db.execute(
            select(Payment)
            .where(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def create_pending_payment(
        self,
        user_id: uuid.UUID,
        amount: int,
        currency: str,
        method: PaymentMethod,
        reference: str,
    ) -> Payment:
        """Create a PENDING payment. The reference must be new."""
        if await self.get_payment_by_reference(reference):
            raise DuplicateReferenceError(f"Payment reference already exists: {reference}")

        payment = Payment(
            user_id=user_id,
            amount=amount,
            currency=currency,
            method=method.value,
            status=PaymentStatus.PENDING.value,
            reference=reference,
        )
        self.db.add(payment)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateReferenceError(f"Payment reference already exists: {reference}") from e

        return payment

    async def initiate_purchase(
        self,
        user_id: uuid.UUID,
        item_type: OrderItemType,
        item_id: uuid.UUID,
        amount: int,
        quantity: int = 1,
        method: PaymentMethod = PaymentMethod.PAYNOW_WEB,
        description: Optional[str] = None,
    ) -> PurchaseResult:
        """
        Start a gateway purchase.

        1. Validate the item
        2. Create PENDING payment + order (one transaction, committed before
           the gateway call so webhooks can find it)
        3. Ask the gateway for a hosted payment
        4. On failure: payment and order FAILED, structured failure returned
        """
        if amount <= 0:
            raise ValidationError("Amount must be positive")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")

        item_description = await self._describe_item(user_id, item_type, item_id)
        reference = self.generate_reference(user_id)

        payment = await self.create_pending_payment(
            user_id=user_id,
            amount=amount,
            currency=settings.default_currency,
            method=method,
            reference=reference,
        )
        order = Order(
            user_id=user_id,
            item_type=item_type.value,
            item_id=item_id,
            quantity=quantity,
            amount=amount,
            payment_id=payment.id,
            reference=reference,
            status=OrderStatus.PENDING.value,
        )
        self.db.add(order)
        await self.db.commit()

        try:
            result = await self.gateway.initiate(
                reference=reference,
                payer_email=user.email,
                amount=amount,
                method=method.value,
                description=description or item_description,
                return_url=settings.paynow_return_url,
            )
        except GatewayError as e:
            logger.error(f"Gateway initiation raised for {reference}: {e}")
            result = None
            error = str(e)
        else:
            error = result.error

        if result is None or not result.success:
            error = error or "Failed to initiate payment"
            now = datetime.now(timezone.utc)
            payment.status = PaymentStatus.FAILED.value
            payment.error_message = error
            payment.failed_at = now
            order.status = OrderStatus.FAILED.value
            await self.db.commit()
            logger.warning(f"Payment initiation failed: {reference} - {error}", extra={"reference": reference})
            return PurchaseResult(
                success=False,
                payment_id=payment.id,
                reference=reference,
                error=error,
            )

        payment.poll_handle = result.poll_handle
        await self.db.commit()

        logger.info(f"Payment initiated: {reference} - Redirect: {result.redirect_url}", extra={"reference": reference})
        return PurchaseResult(
            success=True,
            payment_id=payment.id,
            reference=reference,
            redirect_url=result.redirect_url,
            poll_handle=result.poll_handle,
        )

    async def _describe_item(
        self,
        user_id: uuid.UUID,
        item_type: OrderItemType,
        item_id: uuid.UUID,
    ) -> str:
        """Check the item can be bought and return its payment description."""
        if item_type is OrderItemType.SERVICE:
            service = await self.db.get(ClientService, item_id)
            if not service:
                raise NotFoundError("Service not found")
            if service.user_id != user_id:
                raise PermissionDeniedError("Service belongs to another user")
            if service.status == ClientServiceStatus.CANCELLED.value:
                raise ValidationError("Service has been cancelled")
            definition = service.service_definition
            return f"{definition.name} - {definition.description or 'Service subscription'}"

        model = Product if item_type is OrderItemType.PRODUCT else Package
        row = await self.db.get(model, item_id)
        if not row or not row.is_active:
            raise NotFoundError(f"{model.__name__} not found")
        return f"{row.name} - {row.description or 'Product purchase'}"

    async def reconcile(
        self,
        reference: str,
        terminal_status: PaymentStatus,
        external_txn_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Optional[Payment]:
        """
        Apply a gateway-reported outcome to the ledger, idempotently.

        - unknown reference: logged and dropped, returns None
        - payment already terminal: no-op, returns the existing record
        - PENDING reported: nothing to do
        - first PAID: fulfillment runs exactly once
        - first FAILED: order FAILED
        """
        result = await self.db.execute(
            select(Payment)
            .where(Payment.reference == reference)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()

        if not payment:
            logger.warning(f"Payment not found for reference: {reference}", extra={"reference": reference})
            return None

        if payment.is_terminal:
            logger.info(
                f"Payment {reference} already {payment.status}, ignoring {terminal_status.value} report",
                extra={"reference": reference},
            )
            await self.db.commit()
            return payment

        if not terminal_status.is_terminal:
            await self.db.commit()
            return payment

        receipt = None
        now = datetime.now(timezone.utc)
        if terminal_status is PaymentStatus.PAID:
            payment.status = PaymentStatus.PAID.value
            payment.completed_at = now
            if external_txn_id:
                payment.external_transaction_id = external_txn_id
            receipt = await self.fulfillment.fulfill(payment)
            logger.info(f"Payment {reference} marked as successful", extra={"reference": reference})
        else:
            payment.status = PaymentStatus.FAILED.value
            payment.failed_at = now
            payment.error_message = reason or "Payment failed"
            await self.fulfillment.fail(payment)
            logger.info(f"Payment {reference} marked as failed: {payment.error_message}", extra={"reference": reference})

        await self.db.commit()
        await send_pending(self.email, receipt)
        return payment

    async def check_status(self, poll_handle: str) -> GatewayStatus:
        """
        Ask the gateway directly. Read-only; call reconcile to apply.

        Raises GatewayTimeoutError on timeout, which is transient and does
        not mean the payment failed.
        """
        return await self.gateway.check_status(poll_handle)

    async def poll_and_reconcile(
        self,
        poll_handle: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> PollResult:
        """
        Client poll path: check the gateway, then reconcile a terminal result.

        Only handles the gateway issued for a stored payment are polled, and
        the outcome is applied to that payment alone.
        """
        payment = await self.get_payment_by_poll_handle(poll_handle)
        if not payment:
            raise NotFoundError("Payment not found")
        if user_id and payment.user_id != user_id:
            raise PermissionDeniedError("Payment belongs to another user")

        status = await self.check_status(poll_handle)
        normalized = status.normalized

        if status.reference and status.reference != payment.reference:
            logger.warning(
                f"Poll for {payment.reference} answered for {status.reference}, ignoring",
                extra={"reference": payment.reference},
            )
            return PollResult(
                status=status.status,
                paid=False,
                payment_status=PaymentStatus(payment.status),
                reference=payment.reference,
            )

        if status.amount is not None and status.amount != payment.amount:
            logger.warning(
                f"Gateway amount {status.amount} differs from payment {payment.reference} amount {payment.amount}",
                extra={"reference": payment.reference},
            )

        if normalized.is_terminal:
            payment = await self.reconcile(
                payment.reference,
                normalized,
                external_txn_id=status.external_reference,
                reason=f"Payment {status.status.lower()}",
            )

        return PollResult(
            status=status.status,
            paid=normalized is PaymentStatus.PAID,
            payment_status=PaymentStatus(payment.status),
            amount=status.amount,
            reference=payment.reference,
        )

    async def handle_webhook(self, payload: Mapping[str, str]) -> Optional[Payment]:
        """
        Process a gateway result callback.

        Tolerates missing and unknown fields. A callback that cannot be
        verified is not trusted: the status is fetched from the gateway
        through the stored poll handle instead.
        """
        reference = payload.get("reference")
        if not reference:
            logger.warning("Callback received without reference")
            return None

        key = settings.paynow_integration_key
        if key and not verify_paynow_hash(payload, key):
            logger.warning(f"Unverified callback for {reference}, polling gateway instead", extra={"reference": reference})
            payment = await self.get_payment_by_reference(reference)
            if not payment or not payment.poll_handle:
                logger.warning(f"No pollable payment for reference: {reference}", extra={"reference": reference})
                return payment
            await self.poll_and_reconcile(payment.poll_handle)
            return payment
        if not key:
            logger.warning("Paynow integration key not configured, skipping callback verification")

        raw_status = payload.get("status")
        status = normalize_gateway_status(raw_status)
        if not status.is_terminal:
            logger.info(f"Callback for {reference} with non-terminal status {raw_status!r}")
            return await self.get_payment_by_reference(reference)

        return await self.reconcile(
            reference,
            status,
            external_txn_id=payload.get("paynowreference"),
            reason=f"Payment {(raw_status or '').lower()}",
        )

    async def get_stale_pending_payments(self, now: datetime, older_than_minutes: int) -> List[Payment]:
        threshold = now - timedelta(minutes=older_than_minutes)
        result = await self.db.execute(
            select(Payment)
            .where(Payment.status == PaymentStatus.PENDING.value)
            .where(Payment.poll_handle.is_not(None))
            .where(Payment.created_at < threshold)
            .order_by(Payment.created_at)
        )
        return list(result.scalars().all())

    async def reconcile_stale_payments(
        self,
        now: Optional[datetime] = None,
        older_than_minutes: Optional[int] = None,
    ) -> int:
        """
        Sweep PENDING payments nobody reported on and poll the gateway.

        Returns how many reached a terminal status. Per-payment failures are
        logged and skipped.
        """
        now = now or datetime.now(timezone.utc)
        minutes = older_than_minutes if older_than_minutes is not None else settings.stale_payment_minutes
        payments = await self.get_stale_pending_payments(now, minutes)

        settled = 0
        for payment in payments:
            reference = payment.reference
            try:
                result = await self.poll_and_reconcile(payment.poll_handle)
                if result.payment_status and result.payment_status.is_terminal:
                    settled += 1
            except GatewayError as e:
                logger.warning(f"Stale payment {reference} poll failed: {e}", extra={"reference": reference})
            except Exception as e:
                logger.error(f"Error reconciling stale payment {reference}: {e}", exc_info=True)
                await self.db.rollback()

        logger.info(f"Stale payment sweep complete. Checked {len(payments)}, settled {settled}")
        return settled
