"""Order model - fulfillment record bound 1:1 to a Payment."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from billing.database import Base
from billing.fsm.states import OrderStatus


class Order(Base):
    """
    What a payment buys.

    Flow:
    1. Purchase initiated -> Order created with its Payment (PENDING)
    2. Payment PAID -> Order COMPLETED, item provisioned once
    3. Payment FAILED -> Order FAILED

    For SERVICE orders `item_id` is the ClientService id; for PRODUCT and
    PACKAGE it is the catalog row id.
    """

    __tablename__ = "orders"

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

    item_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
    )

    # Minor units (cents)
    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    payment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("payments.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )

    reference: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=OrderStatus.PENDING.value,
        nullable=False,
    )

    # Null on a COMPLETED order means provisioning failed and needs an operator
    provisioned_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
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

    def __repr__(self) -> str:
        return f"<Order {self.reference} {self.item_type} status={self.status}>"
