"""
Tests for SubscriptionService provisioning and lifecycle operations.
"""

import uuid
from datetime import date, datetime, timezone

import pytest
from sqlalchemy import func, select

from billing.exceptions import InvalidTransitionError, NotFoundError, PermissionDeniedError
from billing.fsm.states import CashTrackKind, ClientServiceStatus
from billing.models.client_service import ClientService
from billing.services.subscription_service import SubscriptionService

NOW = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_provision_active_recurring(db, user, definition):
    service = SubscriptionService(db)

    cs = await service.provision(user.id, definition.id, units=2, enable_recurring=True, now=NOW)

    assert cs.status == ClientServiceStatus.ACTIVE.value
    assert cs.next_billing_date == date(2026, 3, 31)
    assert cs.units == 2
    assert not cs.one_off_cash.claimed


@pytest.mark.asyncio
async def test_provision_non_recurring_has_no_billing_date(db, user, definition):
    cs = await SubscriptionService(db).provision(user.id, definition.id, now=NOW)

    assert cs.next_billing_date is None


@pytest.mark.asyncio
async def test_provision_with_cash_waits_for_confirmation(db, user, definition):
    cs = await SubscriptionService(db).provision(
        user.id, definition.id, enable_recurring=True, one_off_paid_in_cash=True, now=NOW
    )

    assert cs.status == ClientServiceStatus.PENDING_PAYMENT.value
    assert cs.one_off_cash.claimed
    assert not cs.one_off_cash.confirmed


@pytest.mark.asyncio
async def test_provision_twice_updates_same_row(db, user, definition):
    service = SubscriptionService(db)
    first = await service.provision(user.id, definition.id, units=1, now=NOW)
    second = await service.provision(user.id, definition.id, units=5, custom_recurring_price=700, now=NOW)

    assert first.id == second.id
    assert second.units == 5
    assert second.custom_recurring_price == 700
    count = await db.execute(select(func.count()).select_from(ClientService))
    assert count.scalar_one() == 1


@pytest.mark.asyncio
async def test_provision_unknown_definition(db, user):
    with pytest.raises(NotFoundError):
        await SubscriptionService(db).provision(user.id, uuid.uuid4())


@pytest.mark.asyncio
async def test_cash_handshake_end_to_end(db, user, definition):
    service = SubscriptionService(db)
    cs = await service.provision(
        user.id,
        definition.id,
        enable_recurring=True,
        one_off_paid_in_cash=True,
        current_period_paid_in_cash=True,
        now=NOW,
    )

    await service.confirm_cash_payment(cs.id, CashTrackKind.ONE_OFF, "admin-7", now=NOW)
    assert cs.status == ClientServiceStatus.PENDING_PAYMENT.value

    await service.confirm_cash_payment(cs.id, CashTrackKind.CURRENT_PERIOD, "admin-7", now=NOW)
    assert cs.status == ClientServiceStatus.ACTIVE.value
    assert cs.one_off_price_paid is True
    assert cs.current_period_cash.confirmed_by == "admin-7"


@pytest.mark.asyncio
async def test_client_reports_cash(db, user, client_service):
    service = SubscriptionService(db)

    cs = await service.report_cash_payment(client_service.id, CashTrackKind.CURRENT_PERIOD, user_id=user.id)

    assert cs.status == ClientServiceStatus.PENDING_PAYMENT.value
    assert cs.current_period_cash.claimed


@pytest.mark.asyncio
async def test_report_cash_for_other_users_service_denied(db, client_service):
    with pytest.raises(PermissionDeniedError):
        await SubscriptionService(db).report_cash_payment(
            client_service.id, CashTrackKind.ONE_OFF, user_id=uuid.uuid4()
        )


@pytest.mark.asyncio
async def test_confirm_without_claim_rejected(db, client_service):
    with pytest.raises(InvalidTransitionError, match="not marked as cash"):
        await SubscriptionService(db).confirm_cash_payment(client_service.id, CashTrackKind.ONE_OFF, "admin")


@pytest.mark.asyncio
async def test_pause_resume_cancel(db, client_service):
    service = SubscriptionService(db)

    await service.pause(client_service.id)
    assert client_service.status == ClientServiceStatus.SUSPENDED.value

    with pytest.raises(InvalidTransitionError):
        await service.pause(client_service.id)

    await service.resume(client_service.id, now=NOW)
    assert client_service.status == ClientServiceStatus.ACTIVE.value
    assert client_service.next_billing_date == date(2026, 3, 31)

    await service.cancel(client_service.id)
    assert client_service.status == ClientServiceStatus.CANCELLED.value

    with pytest.raises(InvalidTransitionError):
        await service.cancel(client_service.id)


@pytest.mark.asyncio
async def test_unknown_service(db):
    with pytest.raises(NotFoundError):
        await SubscriptionService(db).pause(uuid.uuid4())


@pytest.mark.asyncio
async def test_list_client_services(db, user, client_service):
    service = SubscriptionService(db)

    assert [s.id for s in await service.list_client_services(user_id=user.id)] == [client_service.id]
    assert await service.list_client_services(user_id=uuid.uuid4()) == []
    assert service.recurring_amount(client_service) == 1000
