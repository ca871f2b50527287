"""Maintenance model - monthly maintenance contract on a delivered project."""

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
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, composite

from billing.database import Base
from billing.models.cash_track import CashTrack
from billing.models.user import User


class Project(Base):
    """Client project (owned by the quoting workflow, read here)."""

    __tablename__ = "projects"

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

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    user: Mapped[User] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return f"<Project {self.name}>"


class Maintenance(Base):
    """
    Recurring maintenance fee on a project, billed per calendar month.

    Uses the same cash handshake as ClientService: the client reports a
    cash payment, an admin confirms it, and only then is the period paid.
    """

    __tablename__ = "maintenance"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )

    # Minor units (cents)
    monthly_fee: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    current_period_start: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    current_period_end: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
    )

    is_paid_for_current_period: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    cash: Mapped[CashTrack] = composite(
        mapped_column("paid_in_cash", Boolean, default=False, nullable=False),
        mapped_column("cash_confirmed_at", DateTime(timezone=True), nullable=True),
        mapped_column("cash_confirmed_by", String(100), nullable=True),
    )

    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    reminder_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    last_reminder_sent: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    end_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
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

    project: Mapped[Project] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return (
            f"<Maintenance {self.id} period={self.current_period_start}..{self.current_period_end} "
            f"paid={self.is_paid_for_current_period}>"
        )
