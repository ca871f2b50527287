"""
Billing Scheduler - daily charge and reminder jobs for recurring billing.

Both jobs are plain functions of `now` and the persisted rows; Celery beat
only decides when they run. Each row is handled in its own transaction
under a row lock, and a failure on one row never stops the scan.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from billing.config import settings
from billing.fsm.machine import ClientServiceMachine
from billing.fsm.periods import advance_billing_date, billing_today
from billing.fsm.states import ClientServiceStatus, NotificationType
from billing.models.client_service import ClientService
from billing.models.maintenance import Maintenance
from billing.services.email_service import (
    EmailService,
    PendingEmail,
    format_money,
    render_email,
    send_pending,
)
from billing.services.maintenance_service import start_next_period
from billing.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


@dataclass
class JobResult:
    """Counters reported by a scheduler run."""

    processed: int = 0
    skipped: int = 0
    failed: int = 0
    maintenance_processed: int = 0


class BillingScheduler:
    """Recurring billing jobs over ClientService and Maintenance rows."""

    def __init__(
        self,
        db: AsyncSession,
        notifications: Optional[NotificationService] = None,
        email: Optional[EmailService] = None,
    ):
        self.db = db
        self.notifications = notifications or NotificationService(db)
        self.email = email or EmailService()

    # === Row selection ===

    async def _due_service_ids(self, today) -> List[uuid.UUID]:
        result = await self.db.execute(
            select(ClientService.id)
            .where(ClientService.status == ClientServiceStatus.ACTIVE.value)
            .where(ClientService.enable_recurring.is_(True))
            .where(ClientService.next_billing_date.is_not(None))
            .where(ClientService.next_billing_date <= today)
            .order_by(ClientService.next_billing_date)
        )
        return list(result.scalars().all())

    async def _upcoming_service_ids(self, today, horizon) -> List[uuid.UUID]:
        result = await self.db.execute(
            select(ClientService.id)
            .where(ClientService.status == ClientServiceStatus.ACTIVE.value)
            .where(ClientService.enable_recurring.is_(True))
            .where(ClientService.next_billing_date >= today)
            .where(ClientService.next_billing_date <= horizon)
            .order_by(ClientService.next_billing_date)
        )
        return list(result.scalars().all())

    async def _ended_maintenance_ids(self, today) -> List[uuid.UUID]:
        result = await self.db.execute(
            select(Maintenance.id)
            .where(Maintenance.is_active.is_(True))
            .where(Maintenance.current_period_end < today)
            .order_by(Maintenance.current_period_end)
        )
        return list(result.scalars().all())

    async def _maintenance_due_soon_ids(self, today, horizon) -> List[uuid.UUID]:
        result = await self.db.execute(
            select(Maintenance.id)
            .where(Maintenance.is_active.is_(True))
            .where(Maintenance.is_paid_for_current_period.is_(False))
            .where(Maintenance.current_period_end >= today)
            .where(Maintenance.current_period_end <= horizon)
            .order_by(Maintenance.current_period_end)
        )
        return list(result.scalars().all())

    async def _lock_service(self, service_id: uuid.UUID) -> Optional[ClientService]:
        result = await self.db.execute(
            select(ClientService)
            .where(ClientService.id == service_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _lock_maintenance(self, maintenance_id: uuid.UUID) -> Optional[Maintenance]:
        result = await self.db.execute(
            select(Maintenance)
            .where(Maintenance.id == maintenance_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _send(self, pending: Optional[PendingEmail]) -> None:
        """Emails go out after the row's commit so a rollback never leaves one sent."""
        await send_pending(self.email, pending)

    # === Charge job ===

    async def run_charge_job(self, now: Optional[datetime] = None) -> JobResult:
        """
        Bill every active recurring service whose billing date has arrived.

        The next billing date moves exactly one cycle from the stored date,
        so a late run neither skips nor drifts. Maintenance contracts whose
        month has ended roll onto the next month.
        """
        now = now or datetime.now(timezone.utc)
        today = billing_today(now)
        summary = JobResult()

        service_ids = await self._due_service_ids(today)
        await self.db.commit()
        logger.info(f"Charge job for {today}: {len(service_ids)} services due", extra={"job": "charge"})

        for service_id in service_ids:
            try:
                pending = await self._charge_service(service_id, today)
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                summary.failed += 1
                logger.error(
                    f"Failed to process billing for service {service_id}: {e}",
                    exc_info=True,
                    extra={"job": "charge", "client_service_id": str(service_id)},
                )
                continue

            if pending is None:
                summary.skipped += 1
                continue
            summary.processed += 1
            await self._send(pending)

        maintenance_ids = await self._ended_maintenance_ids(today)
        await self.db.commit()

        for maintenance_id in maintenance_ids:
            try:
                pending = await self._roll_maintenance(maintenance_id, today)
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                summary.failed += 1
                logger.error(
                    f"Failed to advance maintenance {maintenance_id}: {e}",
                    exc_info=True,
                    extra={"job": "charge"},
                )
                continue

            summary.maintenance_processed += 1
            await self._send(pending)

        logger.info(
            f"Charge job complete: processed={summary.processed} skipped={summary.skipped} "
            f"maintenance={summary.maintenance_processed} failed={summary.failed}",
            extra={"job": "charge"},
        )
        return summary

    async def _charge_service(self, service_id: uuid.UUID, today) -> Optional[PendingEmail]:
        service = await self._lock_service(service_id)

        # Another run may have handled it since selection
        if (
            service is None
            or service.status != ClientServiceStatus.ACTIVE.value
            or not service.enable_recurring
            or service.next_billing_date is None
            or service.next_billing_date > today
        ):
            return None

        definition = service.service_definition
        amount = service.recurring_amount
        billed_for = service.next_billing_date

        service.next_billing_date = advance_billing_date(billed_for, definition.billing_cycle_days)
        ClientServiceMachine(service).start_new_period()

        await self.notifications.notify(
            service.user_id,
            NotificationType.PAYMENT_DUE,
            "Payment Due",
            f"Your payment of {format_money(amount, settings.default_currency)} for {definition.name} is due.",
        )

        logger.info(
            f"Billed service {service.id} for {billed_for}, next billing {service.next_billing_date}",
            extra={"job": "charge", "client_service_id": str(service.id)},
        )

        user = service.user
        html = render_email(
            "payment_due.html",
            name=user.display_name,
            item_name=definition.name,
            amount=amount,
            currency=settings.default_currency,
            pay_path=f"/dashboard/services?pay={service.id}",
        )
        return PendingEmail(user.email, f"Payment Due - {definition.name}", html)

    async def _roll_maintenance(self, maintenance_id: uuid.UUID, today) -> Optional[PendingEmail]:
        maintenance = await self._lock_maintenance(maintenance_id)
        if maintenance is None or not maintenance.is_active or maintenance.current_period_end >= today:
            return None

        pending = None
        project = maintenance.project
        if not maintenance.is_paid_for_current_period:
            logger.warning(
                f"Maintenance {maintenance.id} period "
                f"{maintenance.current_period_start}..{maintenance.current_period_end} closed unpaid",
                extra={"job": "charge"},
            )
            await self.notifications.notify(
                project.user_id,
                NotificationType.PAYMENT_DUE,
                "Maintenance Payment Overdue",
                f"The maintenance fee for {project.name} for the period ending "
                f"{maintenance.current_period_end} is overdue.",
            )
            user = project.user
            html = render_email(
                "payment_due.html",
                name=user.display_name,
                item_name=f"{project.name} maintenance",
                amount=maintenance.monthly_fee,
                currency=settings.default_currency,
                pay_path="/dashboard/maintenance",
            )
            pending = PendingEmail(user.email, f"Maintenance Payment Overdue - {project.name}", html)

        start_next_period(maintenance)
        logger.info(
            f"Maintenance {maintenance.id} rolled to "
            f"{maintenance.current_period_start}..{maintenance.current_period_end}",
            extra={"job": "charge"},
        )
        return pending

    # === Reminder job ===

    async def run_reminder_job(self, now: Optional[datetime] = None) -> JobResult:
        """
        Remind clients about billing coming up within the reminder window.

        At most one reminder per service per run. Unless daily repeats are
        enabled, a service is reminded once per billing date.
        """
        now = now or datetime.now(timezone.utc)
        today = billing_today(now)
        horizon = today + timedelta(days=settings.billing_reminder_days)
        summary = JobResult()

        service_ids = await self._upcoming_service_ids(today, horizon)
        await self.db.commit()
        logger.info(
            f"Reminder job for {today}: {len(service_ids)} services billing by {horizon}",
            extra={"job": "reminder"},
        )

        for service_id in service_ids:
            try:
                pending = await self._remind_service(service_id, today, horizon)
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                summary.failed += 1
                logger.error(
                    f"Failed to send reminder for service {service_id}: {e}",
                    exc_info=True,
                    extra={"job": "reminder", "client_service_id": str(service_id)},
                )
                continue

            if pending is None:
                summary.skipped += 1
                continue
            summary.processed += 1
            await self._send(pending)

        maintenance_ids = await self._maintenance_due_soon_ids(today, horizon)
        await self.db.commit()

        for maintenance_id in maintenance_ids:
            try:
                pending = await self._remind_maintenance(maintenance_id, now, today, horizon)
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                summary.failed += 1
                logger.error(
                    f"Failed to send maintenance reminder {maintenance_id}: {e}",
                    exc_info=True,
                    extra={"job": "reminder"},
                )
                continue

            if pending is None:
                continue
            summary.maintenance_processed += 1
            await self._send(pending)

        logger.info(
            f"Reminder job complete: sent={summary.processed} skipped={summary.skipped} "
            f"maintenance={summary.maintenance_processed} failed={summary.failed}",
            extra={"job": "reminder"},
        )
        return summary

    async def _remind_service(self, service_id: uuid.UUID, today, horizon) -> Optional[PendingEmail]:
        service = await self._lock_service(service_id)
        if (
            service is None
            or service.status != ClientServiceStatus.ACTIVE.value
            or not service.enable_recurring
            or service.next_billing_date is None
            or not (today <= service.next_billing_date <= horizon)
        ):
            return None

        billing_date = service.next_billing_date
        if (
            not settings.billing_reminder_daily_repeat
            and service.last_reminder_billing_date == billing_date
        ):
            return None

        definition = service.service_definition
        amount = service.recurring_amount
        days_until = (billing_date - today).days

        service.last_reminder_billing_date = billing_date
        await self.notifications.notify(
            service.user_id,
            NotificationType.BILLING_REMINDER,
            "Upcoming Billing",
            f"{definition.name} will be billed {format_money(amount, settings.default_currency)} "
            f"in {days_until} day(s), on {billing_date}.",
        )

        user = service.user
        html = render_email(
            "billing_reminder.html",
            name=user.display_name,
            service_name=definition.name,
            days_until_billing=days_until,
            units=service.units,
            billing_date=billing_date,
            amount=amount,
            currency=settings.default_currency,
        )
        return PendingEmail(user.email, f"Upcoming Billing - {definition.name}", html)

    async def _remind_maintenance(
        self,
        maintenance_id: uuid.UUID,
        now: datetime,
        today,
        horizon,
    ) -> Optional[PendingEmail]:
        maintenance = await self._lock_maintenance(maintenance_id)
        if (
            maintenance is None
            or not maintenance.is_active
            or maintenance.is_paid_for_current_period
            or not (today <= maintenance.current_period_end <= horizon)
        ):
            return None
        # Reminder fields are cleared when a new period starts
        if maintenance.last_reminder_sent is not None:
            return None

        maintenance.last_reminder_sent = now
        maintenance.reminder_count += 1

        project = maintenance.project
        await self.notifications.notify(
            project.user_id,
            NotificationType.BILLING_REMINDER,
            "Maintenance Fee Reminder",
            f"The maintenance fee for {project.name} is due by {maintenance.current_period_end}.",
        )

        user = project.user
        html = render_email(
            "maintenance_reminder.html",
            name=user.display_name,
            project_name=project.name,
            period_end=maintenance.current_period_end,
            amount=maintenance.monthly_fee,
            currency=settings.default_currency,
        )
        return PendingEmail(user.email, f"Maintenance Fee Reminder - {project.name}", html)
