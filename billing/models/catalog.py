"""Catalog models - service definitions, products and packages (read-only here)."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Boolean, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from billing.database import Base


class ServiceDefinition(Base):
    """
    Subscribable service offered to clients.
    Prices are in minor units (cents).
    """

    __tablename__ = "service_definitions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    one_off_price: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )

    recurring_price: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )

    # Recurring price is charged per unit when set
    recurring_price_per_unit: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    billing_cycle_days: Mapped[int] = mapped_column(
        Integer,
        default=30,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ServiceDefinition {self.name} cycle={self.billing_cycle_days}d>"


class Product(Base):
    """One-off product sold through the marketplace."""

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Product {self.name}>"


class Package(Base):
    """Bundle of services/products sold at a single price."""

    __tablename__ = "packages"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Package {self.name}>"
