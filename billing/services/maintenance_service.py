"""
Maintenance Service - monthly maintenance contracts on client projects.
"""

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from billing.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from billing.fsm.periods import billing_today, month_period, next_month_period
from billing.models.cash_track import CashTrack
from billing.models.maintenance import Maintenance, Project

logger = logging.getLogger(__name__)


def start_next_period(maintenance: Maintenance) -> None:
    """Roll a contract onto the following calendar month, unpaid."""
    start, end = next_month_period(maintenance.current_period_start)
    maintenance.current_period_start = start
    maintenance.current_period_end = end
    maintenance.is_paid_for_current_period = False
    maintenance.cash = CashTrack()
    maintenance.paid_at = None
    maintenance.reminder_count = 0
    maintenance.last_reminder_sent = None


class MaintenanceService:
    """Service for maintenance contract management."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, maintenance_id: uuid.UUID) -> Maintenance:
        maintenance = await self.db.get(Maintenance, maintenance_id)
        if not maintenance:
            raise NotFoundError("Maintenance contract not found")
        return maintenance

    async def _lock(self, maintenance_id: uuid.UUID) -> Maintenance:
        result = await self.db.execute(
            select(Maintenance)
            .where(Maintenance.id == maintenance_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        maintenance = result.scalar_one_or_none()
        if not maintenance:
            raise NotFoundError("Maintenance contract not found")
        return maintenance

    @staticmethod
    def _check_owner(maintenance: Maintenance, user_id: uuid.UUID) -> None:
        if maintenance.project.user_id != user_id:
            raise PermissionDeniedError("Maintenance contract belongs to another user")

    async def create_or_update(
        self,
        project_id: uuid.UUID,
        monthly_fee: int,
        start_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Maintenance:
        """
        Put a project under maintenance.

        An existing contract keeps its current period; only the fee changes
        and it is reactivated.
        """
        if monthly_fee < 0:
            raise ValidationError("Monthly fee cannot be negative")

        project = await self.db.get(Project, project_id)
        if not project:
            raise NotFoundError("Project not found")

        result = await self.db.execute(
            select(Maintenance).where(Maintenance.project_id == project_id)
        )
        maintenance = result.scalar_one_or_none()

        if maintenance:
            maintenance.monthly_fee = monthly_fee
            maintenance.is_active = True
            maintenance.end_date = None
            await self.db.flush()
            logger.info(f"Maintenance updated for project {project.name}: fee={monthly_fee}")
            return maintenance

        today = billing_today(now or datetime.now(timezone.utc))
        start, end = month_period(start_date or today.replace(day=1))
        maintenance = Maintenance(
            project_id=project_id,
            project=project,
            monthly_fee=monthly_fee,
            is_active=True,
            current_period_start=start,
            current_period_end=end,
            is_paid_for_current_period=False,
            cash=CashTrack(),
            reminder_count=0,
        )
        self.db.add(maintenance)
        await self.db.flush()

        logger.info(f"Maintenance created for project {project.name}: {start}..{end} fee={monthly_fee}")
        return maintenance

    async def list_all(self, include_inactive: bool = False) -> List[Maintenance]:
        """Admin view: unpaid first, then soonest due."""
        query = select(Maintenance).order_by(
            Maintenance.is_paid_for_current_period.asc(),
            Maintenance.current_period_end.asc(),
        )
        if not include_inactive:
            query = query.where(Maintenance.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_for_user(self, user_id: uuid.UUID) -> List[Maintenance]:
        result = await self.db.execute(
            select(Maintenance)
            .join(Project, Maintenance.project_id == Project.id)
            .where(Project.user_id == user_id)
            .where(Maintenance.is_active.is_(True))
            .order_by(Maintenance.current_period_end.asc())
        )
        return list(result.scalars().all())

    async def mark_paid_in_cash(self, maintenance_id: uuid.UUID, user_id: uuid.UUID) -> Maintenance:
        """Client reports a cash payment for the current period."""
        maintenance = await self._lock(maintenance_id)
        self._check_owner(maintenance, user_id)
        if maintenance.is_paid_for_current_period:
            raise InvalidTransitionError("Current period is already paid")

        maintenance.cash = maintenance.cash.claim()
        await self.db.flush()

        logger.info(f"Cash payment reported for maintenance {maintenance.id}")
        return maintenance

    async def mark_paid_via_gateway(
        self,
        maintenance_id: uuid.UUID,
        user_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Maintenance:
        """Current period settled through the gateway; any cash claim is dropped."""
        maintenance = await self._lock(maintenance_id)
        self._check_owner(maintenance, user_id)

        maintenance.cash = CashTrack()
        maintenance.is_paid_for_current_period = True
        maintenance.paid_at = now or datetime.now(timezone.utc)
        await self.db.flush()

        logger.info(f"Maintenance {maintenance.id} paid via gateway")
        return maintenance

    async def confirm_cash_payment(
        self,
        maintenance_id: uuid.UUID,
        admin_id: str,
        now: Optional[datetime] = None,
    ) -> Maintenance:
        maintenance = await self._lock(maintenance_id)
        if not maintenance.cash.claimed:
            raise InvalidTransitionError("Payment was not marked as cash")
        if maintenance.cash.confirmed:
            raise InvalidTransitionError("Cash payment already confirmed")

        now = now or datetime.now(timezone.utc)
        maintenance.cash = maintenance.cash.confirm(admin_id, now)
        maintenance.is_paid_for_current_period = True
        maintenance.paid_at = now
        await self.db.flush()

        logger.info(f"Maintenance {maintenance.id} cash payment confirmed by {admin_id}")
        return maintenance

    async def advance_to_next_period(self, maintenance_id: uuid.UUID) -> Maintenance:
        maintenance = await self._lock(maintenance_id)
        start_next_period(maintenance)
        await self.db.flush()

        logger.info(
            f"Maintenance {maintenance.id} advanced to "
            f"{maintenance.current_period_start}..{maintenance.current_period_end}"
        )
        return maintenance

    async def get_overdue(self, now: Optional[datetime] = None) -> List[Maintenance]:
        """Active, unpaid contracts whose period has already ended."""
        today = billing_today(now or datetime.now(timezone.utc))
        result = await self.db.execute(
            select(Maintenance)
            .where(Maintenance.is_active.is_(True))
            .where(Maintenance.is_paid_for_current_period.is_(False))
            .where(Maintenance.current_period_end < today)
            .order_by(Maintenance.current_period_end.asc())
        )
        return list(result.scalars().all())

    async def get_due_soon(self, now: Optional[datetime] = None, days: int = 7) -> List[Maintenance]:
        """Active, unpaid contracts whose period ends within `days`."""
        today = billing_today(now or datetime.now(timezone.utc))
        result = await self.db.execute(
            select(Maintenance)
            .where(Maintenance.is_active.is_(True))
            .where(Maintenance.is_paid_for_current_period.is_(False))
            .where(Maintenance.current_period_end >= today)
            .where(Maintenance.current_period_end <= today + timedelta(days=days))
            .order_by(Maintenance.current_period_end.asc())
        )
        return list(result.scalars().all())

    async def record_reminder_sent(
        self,
        maintenance_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Maintenance:
        maintenance = await self._lock(maintenance_id)
        maintenance.last_reminder_sent = now or datetime.now(timezone.utc)
        maintenance.reminder_count += 1
        await self.db.flush()
        return maintenance

    async def deactivate(
        self,
        maintenance_id: uuid.UUID,
        end_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Maintenance:
        maintenance = await self._lock(maintenance_id)
        maintenance.is_active = False
        maintenance.end_date = end_date or billing_today(now or datetime.now(timezone.utc))
        await self.db.flush()

        logger.info(f"Maintenance {maintenance.id} deactivated, ends {maintenance.end_date}")
        return maintenance

    async def add_notes(self, maintenance_id: uuid.UUID, notes: str) -> Maintenance:
        maintenance = await self._lock(maintenance_id)
        maintenance.notes = notes
        await self.db.flush()
        return maintenance
