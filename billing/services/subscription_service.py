"""
Subscription Service - provisioning and lifecycle of client services.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from billing.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from billing.fsm.machine import ClientServiceMachine
from billing.fsm.periods import billing_today, first_billing_date
from billing.fsm.states import CashTrackKind, ClientServiceStatus
from billing.models.cash_track import CashTrack
from billing.models.catalog import ServiceDefinition
from billing.models.client_service import ClientService
from billing.models.user import User

logger = logging.getLogger(__name__)


class SubscriptionService:
    """Service for managing client service subscriptions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_client_service(self, client_service_id: uuid.UUID) -> ClientService:
        service = await self.db.get(ClientService, client_service_id)
        if not service:
            raise NotFoundError("Client service not found")
        return service

    async def list_client_services(self, user_id: Optional[uuid.UUID] = None) -> List[ClientService]:
        query = select(ClientService).order_by(ClientService.date_joined.desc())
        if user_id:
            query = query.where(ClientService.user_id == user_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    def recurring_amount(service: ClientService) -> int:
        return service.recurring_amount

    async def _lock(self, client_service_id: uuid.UUID) -> ClientService:
        """Load a service row under a row lock, refreshing any cached copy."""
        result = await self.db.execute(
            select(ClientService)
            .where(ClientService.id == client_service_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        service = result.scalar_one_or_none()
        if not service:
            raise NotFoundError("Client service not found")
        return service

    async def provision(
        self,
        user_id: uuid.UUID,
        service_definition_id: uuid.UUID,
        units: int = 1,
        enable_recurring: bool = False,
        custom_recurring_price: Optional[int] = None,
        one_off_paid_in_cash: bool = False,
        current_period_paid_in_cash: bool = False,
        now: Optional[datetime] = None,
    ) -> ClientService:
        """
        Create or update the subscription for (user, definition).

        A cash claim on either track holds the service in PENDING_PAYMENT
        until an admin confirms it.
        """
        if units < 1:
            raise ValidationError("Units must be at least 1")
        if custom_recurring_price is not None and custom_recurring_price < 0:
            raise ValidationError("Custom recurring price cannot be negative")

        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        definition = await self.db.get(ServiceDefinition, service_definition_id)
        if not definition:
            raise NotFoundError("Service definition not found")

        today = billing_today(now or datetime.now(timezone.utc))
        next_billing_date = first_billing_date(today, definition.billing_cycle_days, enable_recurring)
        needs_cash_confirmation = one_off_paid_in_cash or current_period_paid_in_cash
        status = (
            ClientServiceStatus.PENDING_PAYMENT
            if needs_cash_confirmation
            else ClientServiceStatus.ACTIVE
        )

        result = await self.db.execute(
            select(ClientService)
            .where(
                ClientService.user_id == user_id,
                ClientService.service_definition_id == service_definition_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        service = result.scalar_one_or_none()

        if service is None:
            service = ClientService(
                user_id=user_id,
                service_definition_id=service_definition_id,
                user=user,
                service_definition=definition,
            )
            self.db.add(service)
            action = "provisioned"
        else:
            action = "re-provisioned"

        service.units = units
        service.enable_recurring = enable_recurring
        service.custom_recurring_price = custom_recurring_price
        service.next_billing_date = next_billing_date
        service.status = status.value
        service.one_off_cash = CashTrack(claimed=one_off_paid_in_cash)
        service.current_period_cash = CashTrack(claimed=current_period_paid_in_cash)
        service.last_reminder_billing_date = None
        if service.one_off_price_paid is None:
            service.one_off_price_paid = False

        await self.db.flush()

        logger.info(
            f"Service {definition.name} {action} for user {user_id}: "
            f"status={service.status} next_billing={next_billing_date}",
            extra={"client_service_id": str(service.id)},
        )
        return service

    async def report_cash_payment(
        self,
        client_service_id: uuid.UUID,
        track: CashTrackKind,
        user_id: Optional[uuid.UUID] = None,
    ) -> ClientService:
        """Client reports a cash payment. Pass user_id to enforce ownership."""
        service = await self._lock(client_service_id)
        if user_id and service.user_id != user_id:
            raise PermissionDeniedError("Service belongs to another user")

        ClientServiceMachine(service).report_cash(track)
        await self.db.flush()

        logger.info(
            f"Cash payment reported on {track.value} track of service {service.id}",
            extra={"client_service_id": str(service.id)},
        )
        return service

    async def confirm_cash_payment(
        self,
        client_service_id: uuid.UUID,
        track: CashTrackKind,
        admin_id: str,
        now: Optional[datetime] = None,
    ) -> ClientService:
        """Admin confirms a reported cash payment."""
        service = await self._lock(client_service_id)

        ClientServiceMachine(service).confirm_cash(track, admin_id, now or datetime.now(timezone.utc))
        await self.db.flush()

        logger.info(
            f"Cash payment on {track.value} track of service {service.id} confirmed by {admin_id} "
            f"(status={service.status})",
            extra={"client_service_id": str(service.id)},
        )
        return service

    async def pause(self, client_service_id: uuid.UUID) -> ClientService:
        service = await self._lock(client_service_id)
        ClientServiceMachine(service).pause()
        await self.db.flush()
        return service

    async def resume(self, client_service_id: uuid.UUID, now: Optional[datetime] = None) -> ClientService:
        service = await self._lock(client_service_id)
        ClientServiceMachine(service).resume(billing_today(now or datetime.now(timezone.utc)))
        await self.db.flush()
        return service

    async def cancel(self, client_service_id: uuid.UUID) -> ClientService:
        service = await self._lock(client_service_id)
        ClientServiceMachine(service).cancel()
        await self.db.flush()
        return service
