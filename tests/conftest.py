"""
Pytest configuration and fixtures.
"""

import os
import sys
from typing import AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path
sys.path.append(os.getcwd())

from billing.database import Base
from billing.exceptions import GatewayError
from billing.fsm.states import ClientServiceStatus
from billing.models import (
    ClientService,
    Package,
    Product,
    Project,
    ServiceDefinition,
    User,
)
from billing.models.cash_track import CashTrack
from billing.services.gateway import GatewayStatus, InitiationResult

# Use in-memory SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


class FakeGateway:
    """In-memory PaymentGateway. Statuses are keyed by poll handle."""

    def __init__(self):
        self.initiate_result: Optional[InitiationResult] = None
        self.initiate_error: Optional[Exception] = None
        self.statuses: Dict[str, GatewayStatus] = {}
        self.check_error: Optional[Exception] = None
        self.initiated: List[dict] = []
        self.checked: List[str] = []

    async def initiate(self, reference, payer_email, amount, method, description, return_url):
        self.initiated.append({
            "reference": reference,
            "payer_email": payer_email,
            "amount": amount,
            "method": method,
            "description": description,
            "return_url": return_url,
        })
        if self.initiate_error:
            raise self.initiate_error
        if self.initiate_result:
            return self.initiate_result
        return InitiationResult(
            success=True,
            redirect_url=f"https://pay.example/{reference}",
            poll_handle=f"https://pay.example/poll/{reference}",
        )

    async def check_status(self, poll_handle):
        self.checked.append(poll_handle)
        if self.check_error:
            raise self.check_error
        if poll_handle not in self.statuses:
            raise GatewayError(f"Unknown poll handle {poll_handle}")
        return self.statuses[poll_handle]


class RecordingEmail:
    """Email sink that records what would have been sent."""

    def __init__(self, fail_for: Optional[set] = None):
        self.sent: List[dict] = []
        self.fail_for = fail_for or set()

    async def send_email(self, to, subject, html, text=None):
        if to in self.fail_for:
            raise ConnectionError(f"SMTP down for {to}")
        self.sent.append({"to": to, "subject": subject, "html": html})
        return True


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for a test."""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def email() -> RecordingEmail:
    return RecordingEmail()


@pytest_asyncio.fixture
async def user(db) -> User:
    user = User(email="client@example.com", name="Tendai")
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def definition(db) -> ServiceDefinition:
    definition = ServiceDefinition(
        name="Web Hosting",
        description="Managed hosting",
        one_off_price=1500,
        recurring_price=1000,
        recurring_price_per_unit=False,
        billing_cycle_days=30,
        is_active=True,
    )
    db.add(definition)
    await db.commit()
    return definition


@pytest_asyncio.fixture
async def client_service(db, user, definition) -> ClientService:
    service = ClientService(
        user_id=user.id,
        service_definition_id=definition.id,
        user=user,
        service_definition=definition,
        units=1,
        status=ClientServiceStatus.ACTIVE.value,
        enable_recurring=True,
        one_off_price_paid=False,
        one_off_cash=CashTrack(),
        current_period_cash=CashTrack(),
    )
    db.add(service)
    await db.commit()
    return service


@pytest_asyncio.fixture
async def product(db) -> Product:
    product = Product(name="SSL Certificate", description="1 year", price=2500, is_active=True)
    db.add(product)
    await db.commit()
    return product


@pytest_asyncio.fixture
async def package(db) -> Package:
    package = Package(name="Starter Bundle", description="Site + email", price=9900, is_active=True)
    db.add(package)
    await db.commit()
    return package


@pytest_asyncio.fixture
async def project(db, user) -> Project:
    project = Project(user_id=user.id, name="Company Website", user=user)
    db.add(project)
    await db.commit()
    return project
