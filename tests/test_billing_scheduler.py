"""
Tests for the recurring billing charge and reminder jobs.
"""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy import select

from billing.config import settings
from billing.fsm.states import ClientServiceStatus, NotificationType
from billing.models.cash_track import CashTrack
from billing.models.client_service import ClientService
from billing.models.maintenance import Maintenance
from billing.models.notification import Notification
from billing.models.user import User
from billing.services.billing_scheduler import BillingScheduler

from conftest import RecordingEmail

# 08:00 in Harare
NOW = datetime(2026, 3, 10, 6, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 10)


async def notifications(db, type: NotificationType):
    result = await db.execute(select(Notification).where(Notification.type == type.value))
    return list(result.scalars().all())


async def set_billing_date(db, service: ClientService, value: date) -> None:
    service.next_billing_date = value
    await db.commit()


async def make_maintenance(db, project, start: date, end: date, paid: bool = False) -> Maintenance:
    maintenance = Maintenance(
        project_id=project.id,
        project=project,
        monthly_fee=5000,
        is_active=True,
        current_period_start=start,
        current_period_end=end,
        is_paid_for_current_period=paid,
        cash=CashTrack(),
        reminder_count=0,
    )
    db.add(maintenance)
    await db.commit()
    return maintenance


@pytest.mark.asyncio
async def test_charge_due_service(db, client_service, email):
    await set_billing_date(db, client_service, date(2026, 3, 9))
    client_service.current_period_cash = CashTrack(claimed=True).confirm("admin", NOW)
    await db.commit()

    summary = await BillingScheduler(db, email=email).run_charge_job(NOW)

    assert summary.processed == 1
    assert client_service.next_billing_date == date(2026, 4, 8)
    assert client_service.current_period_cash == CashTrack()
    assert len(await notifications(db, NotificationType.PAYMENT_DUE)) == 1
    assert len(email.sent) == 1
    assert "$10.00" in email.sent[0]["html"]


@pytest.mark.asyncio
async def test_late_run_advances_from_stored_date(db, client_service, email):
    await set_billing_date(db, client_service, date(2026, 3, 5))

    await BillingScheduler(db, email=email).run_charge_job(NOW)

    assert client_service.next_billing_date == date(2026, 4, 4)


@pytest.mark.asyncio
async def test_charge_is_idempotent_within_a_day(db, client_service, email):
    await set_billing_date(db, client_service, TODAY)
    scheduler = BillingScheduler(db, email=email)

    first = await scheduler.run_charge_job(NOW)
    second = await scheduler.run_charge_job(NOW)

    assert first.processed == 1
    assert second.processed == 0
    assert client_service.next_billing_date == date(2026, 4, 9)
    assert len(await notifications(db, NotificationType.PAYMENT_DUE)) == 1


@pytest.mark.asyncio
async def test_future_and_inactive_services_not_charged(db, client_service, email):
    await set_billing_date(db, client_service, date(2026, 3, 11))

    summary = await BillingScheduler(db, email=email).run_charge_job(NOW)

    assert summary.processed == 0
    assert client_service.next_billing_date == date(2026, 3, 11)

    client_service.next_billing_date = date(2026, 3, 1)
    client_service.status = ClientServiceStatus.SUSPENDED.value
    await db.commit()

    await BillingScheduler(db, email=email).run_charge_job(NOW)

    assert client_service.next_billing_date == date(2026, 3, 1)
    assert email.sent == []


@pytest.mark.asyncio
async def test_email_failure_does_not_stop_batch(db, user, definition, client_service):
    other = User(email="second@example.com", name="Rudo")
    db.add(other)
    await db.commit()
    second = ClientService(
        user_id=other.id,
        service_definition_id=definition.id,
        user=other,
        service_definition=definition,
        units=1,
        status=ClientServiceStatus.ACTIVE.value,
        enable_recurring=True,
        one_off_price_paid=True,
        one_off_cash=CashTrack(),
        current_period_cash=CashTrack(),
        next_billing_date=date(2026, 3, 9),
    )
    db.add(second)
    await set_billing_date(db, client_service, date(2026, 3, 8))
    email = RecordingEmail(fail_for={user.email})

    summary = await BillingScheduler(db, email=email).run_charge_job(NOW)

    assert summary.processed == 2
    assert summary.failed == 0
    assert client_service.next_billing_date == date(2026, 4, 7)
    assert second.next_billing_date == date(2026, 4, 8)
    assert [m["to"] for m in email.sent] == [other.email]


@pytest.mark.asyncio
async def test_reminder_inside_window(db, client_service, email):
    await set_billing_date(db, client_service, date(2026, 3, 13))

    summary = await BillingScheduler(db, email=email).run_reminder_job(NOW)

    assert summary.processed == 1
    reminders = await notifications(db, NotificationType.BILLING_REMINDER)
    assert len(reminders) == 1
    assert "3 day(s)" in reminders[0].message
    assert "13 March 2026" in email.sent[0]["html"]
    assert client_service.last_reminder_billing_date == date(2026, 3, 13)


@pytest.mark.asyncio
async def test_reminder_sent_once_per_cycle(db, client_service, email):
    await set_billing_date(db, client_service, date(2026, 3, 13))
    scheduler = BillingScheduler(db, email=email)

    await scheduler.run_reminder_job(NOW)
    await scheduler.run_reminder_job(datetime(2026, 3, 11, 6, 0, tzinfo=timezone.utc))

    assert len(await notifications(db, NotificationType.BILLING_REMINDER)) == 1
    assert len(email.sent) == 1


@pytest.mark.asyncio
async def test_reminder_daily_repeat(db, client_service, email, monkeypatch):
    monkeypatch.setattr(settings, "billing_reminder_daily_repeat", True)
    await set_billing_date(db, client_service, date(2026, 3, 13))
    scheduler = BillingScheduler(db, email=email)

    await scheduler.run_reminder_job(NOW)
    await scheduler.run_reminder_job(datetime(2026, 3, 11, 6, 0, tzinfo=timezone.utc))

    assert len(email.sent) == 2


@pytest.mark.asyncio
async def test_reminder_outside_window(db, client_service, email):
    await set_billing_date(db, client_service, date(2026, 3, 18))

    summary = await BillingScheduler(db, email=email).run_reminder_job(NOW)

    assert summary.processed == 0
    assert email.sent == []


@pytest.mark.asyncio
async def test_reminder_amount_per_unit(db, client_service, definition, email):
    definition.recurring_price_per_unit = True
    client_service.units = 3
    await set_billing_date(db, client_service, TODAY)

    await BillingScheduler(db, email=email).run_reminder_job(NOW)

    assert "$30.00" in email.sent[0]["html"]


@pytest.mark.asyncio
async def test_charge_job_rolls_ended_maintenance(db, project, email):
    unpaid = await make_maintenance(db, project, date(2026, 2, 1), date(2026, 2, 28))

    summary = await BillingScheduler(db, email=email).run_charge_job(NOW)

    assert summary.maintenance_processed == 1
    assert unpaid.current_period_start == date(2026, 3, 1)
    assert unpaid.current_period_end == date(2026, 3, 31)
    assert unpaid.is_paid_for_current_period is False
    due = await notifications(db, NotificationType.PAYMENT_DUE)
    assert len(due) == 1
    assert "Company Website" in due[0].message
    assert len(email.sent) == 1


@pytest.mark.asyncio
async def test_paid_maintenance_rolls_quietly(db, project, email):
    paid = await make_maintenance(db, project, date(2026, 2, 1), date(2026, 2, 28), paid=True)

    await BillingScheduler(db, email=email).run_charge_job(NOW)

    assert paid.current_period_start == date(2026, 3, 1)
    assert paid.is_paid_for_current_period is False
    assert await notifications(db, NotificationType.PAYMENT_DUE) == []
    assert email.sent == []


@pytest.mark.asyncio
async def test_maintenance_reminder_once_per_period(db, project, email):
    maintenance = await make_maintenance(db, project, date(2026, 3, 1), date(2026, 3, 14))
    scheduler = BillingScheduler(db, email=email)

    await scheduler.run_reminder_job(NOW)
    await scheduler.run_reminder_job(datetime(2026, 3, 11, 6, 0, tzinfo=timezone.utc))

    assert maintenance.reminder_count == 1
    assert maintenance.last_reminder_sent is not None
    assert len(email.sent) == 1
    assert "Company Website" in email.sent[0]["html"]
