"""ClientService model - a user's subscription to a service definition."""

import uuid
from datetime import datetime, date, timezone
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    ForeignKey,
    Integer,
    Boolean,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, composite

from billing.database import Base
from billing.fsm.states import ClientServiceStatus
from billing.models.cash_track import CashTrack
from billing.models.catalog import ServiceDefinition
from billing.models.user import User


class ClientService(Base):
    """
    Subscription row, one per (user, service definition).

    Re-provisioning the same pair updates this row. Cancellation is a
    status; rows are never deleted.
    """

    __tablename__ = "client_services"
    __table_args__ = (
        UniqueConstraint("user_id", "service_definition_id", name="uq_client_service_user_definition"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    service_definition_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("service_definitions.id"),
        nullable=False,
        index=True,
    )

    units: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(30),
        default=ClientServiceStatus.ACTIVE.value,
        nullable=False,
        index=True,
    )

    enable_recurring: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    # Overrides the catalog recurring price (minor units)
    custom_recurring_price: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )

    next_billing_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        index=True,
    )

    one_off_price_paid: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    # === Cash dual track ===

    one_off_cash: Mapped[CashTrack] = composite(
        mapped_column("one_off_paid_in_cash", Boolean, default=False, nullable=False),
        mapped_column("one_off_cash_confirmed_at", DateTime(timezone=True), nullable=True),
        mapped_column("one_off_cash_confirmed_by", String(100), nullable=True),
    )

    current_period_cash: Mapped[CashTrack] = composite(
        mapped_column("current_period_paid_in_cash", Boolean, default=False, nullable=False),
        mapped_column("current_period_cash_confirmed_at", DateTime(timezone=True), nullable=True),
        mapped_column("current_period_cash_confirmed_by", String(100), nullable=True),
    )

    # Billing date the last upcoming-billing reminder was sent for
    last_reminder_billing_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
    )

    date_joined: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    user: Mapped[User] = relationship(lazy="selectin")
    service_definition: Mapped[ServiceDefinition] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return f"<ClientService {self.id} status={self.status} next={self.next_billing_date}>"

    @property
    def cash_gate_open(self) -> bool:
        """Every claimed cash track is confirmed."""
        return self.one_off_cash.satisfied and self.current_period_cash.satisfied

    @property
    def recurring_amount(self) -> int:
        """Amount due per billing cycle in minor units."""
        definition = self.service_definition
        price = self.custom_recurring_price
        if price is None:
            price = definition.recurring_price or 0
        if definition.recurring_price_per_unit:
            return price * self.units
        return price
