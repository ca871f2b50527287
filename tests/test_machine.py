"""
Tests for the client service lifecycle machine and its cash gate.
"""

import uuid
from datetime import date, datetime, timezone

import pytest

from billing.exceptions import InvalidTransitionError
from billing.fsm.machine import ClientServiceMachine
from billing.fsm.states import CashTrackKind, ClientServiceStatus
from billing.models.cash_track import CashTrack
from billing.models.catalog import ServiceDefinition
from billing.models.client_service import ClientService

NOW = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


def make_service(status=ClientServiceStatus.ACTIVE, one_off=None, period=None, recurring=True):
    definition = ServiceDefinition(
        id=uuid.uuid4(),
        name="Web Hosting",
        recurring_price=1000,
        recurring_price_per_unit=False,
        billing_cycle_days=30,
    )
    return ClientService(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        service_definition_id=definition.id,
        service_definition=definition,
        units=1,
        status=status.value,
        enable_recurring=recurring,
        one_off_price_paid=False,
        one_off_cash=one_off or CashTrack(),
        current_period_cash=period or CashTrack(),
    )


def test_cash_track_satisfied():
    assert CashTrack().satisfied
    assert not CashTrack(claimed=True).satisfied
    assert CashTrack(claimed=True).confirm("admin", NOW).satisfied


def test_report_cash_moves_active_to_pending_payment():
    service = make_service()
    ClientServiceMachine(service).report_cash(CashTrackKind.CURRENT_PERIOD)

    assert service.status == ClientServiceStatus.PENDING_PAYMENT.value
    assert service.current_period_cash.claimed
    assert not service.current_period_cash.confirmed


def test_confirm_single_track_activates():
    service = make_service(
        status=ClientServiceStatus.PENDING_PAYMENT,
        one_off=CashTrack(claimed=True),
    )
    ClientServiceMachine(service).confirm_cash(CashTrackKind.ONE_OFF, "admin-1", NOW)

    assert service.status == ClientServiceStatus.ACTIVE.value
    assert service.one_off_price_paid is True
    assert service.one_off_cash.confirmed_by == "admin-1"
    assert service.one_off_cash.confirmed_at == NOW


def test_both_tracks_must_be_confirmed():
    service = make_service(
        status=ClientServiceStatus.PENDING_PAYMENT,
        one_off=CashTrack(claimed=True),
        period=CashTrack(claimed=True),
    )
    machine = ClientServiceMachine(service)

    machine.confirm_cash(CashTrackKind.ONE_OFF, "admin-1", NOW)
    assert service.status == ClientServiceStatus.PENDING_PAYMENT.value

    machine.confirm_cash(CashTrackKind.CURRENT_PERIOD, "admin-1", NOW)
    assert service.status == ClientServiceStatus.ACTIVE.value


def test_confirm_unclaimed_track_rejected():
    service = make_service(status=ClientServiceStatus.PENDING_PAYMENT, one_off=CashTrack(claimed=True))

    with pytest.raises(InvalidTransitionError, match="not marked as cash"):
        ClientServiceMachine(service).confirm_cash(CashTrackKind.CURRENT_PERIOD, "admin-1", NOW)

    assert service.status == ClientServiceStatus.PENDING_PAYMENT.value
    assert not service.current_period_cash.confirmed


def test_confirm_twice_rejected():
    service = make_service(one_off=CashTrack(claimed=True).confirm("admin-1", NOW))

    with pytest.raises(InvalidTransitionError, match="already confirmed"):
        ClientServiceMachine(service).confirm_cash(CashTrackKind.ONE_OFF, "admin-2", NOW)

    assert service.one_off_cash.confirmed_by == "admin-1"


def test_confirm_on_cancelled_rejected():
    service = make_service(status=ClientServiceStatus.CANCELLED, one_off=CashTrack(claimed=True))

    with pytest.raises(InvalidTransitionError):
        ClientServiceMachine(service).confirm_cash(CashTrackKind.ONE_OFF, "admin-1", NOW)

    assert service.status == ClientServiceStatus.CANCELLED.value


def test_confirm_on_suspended_keeps_suspension():
    service = make_service(status=ClientServiceStatus.SUSPENDED, period=CashTrack(claimed=True))
    ClientServiceMachine(service).confirm_cash(CashTrackKind.CURRENT_PERIOD, "admin-1", NOW)

    assert service.status == ClientServiceStatus.SUSPENDED.value
    assert service.current_period_cash.confirmed


def test_report_cash_on_suspended_rejected():
    service = make_service(status=ClientServiceStatus.SUSPENDED)

    with pytest.raises(InvalidTransitionError):
        ClientServiceMachine(service).report_cash(CashTrackKind.ONE_OFF)

    assert not service.one_off_cash.claimed


def test_gateway_payment_supersedes_cash_claim():
    service = make_service(status=ClientServiceStatus.PENDING_PAYMENT, one_off=CashTrack(claimed=True))
    ClientServiceMachine(service).apply_gateway_payment()

    assert service.one_off_price_paid is True
    assert service.one_off_cash == CashTrack()
    assert service.status == ClientServiceStatus.ACTIVE.value


def test_gateway_payment_on_cancelled_rejected():
    service = make_service(status=ClientServiceStatus.CANCELLED)

    with pytest.raises(InvalidTransitionError):
        ClientServiceMachine(service).apply_gateway_payment()

    assert service.one_off_price_paid is False


def test_pause_only_from_active():
    service = make_service(status=ClientServiceStatus.PENDING_PAYMENT)

    with pytest.raises(InvalidTransitionError, match="Can only pause an active service"):
        ClientServiceMachine(service).pause()

    active = make_service()
    ClientServiceMachine(active).pause()
    assert active.status == ClientServiceStatus.SUSPENDED.value


def test_resume_restarts_billing_from_today():
    service = make_service(status=ClientServiceStatus.SUSPENDED)
    service.next_billing_date = date(2026, 1, 5)

    ClientServiceMachine(service).resume(date(2026, 3, 1))

    assert service.status == ClientServiceStatus.ACTIVE.value
    assert service.next_billing_date == date(2026, 3, 31)


def test_resume_non_recurring_has_no_billing_date():
    service = make_service(status=ClientServiceStatus.SUSPENDED, recurring=False)
    ClientServiceMachine(service).resume(date(2026, 3, 1))

    assert service.next_billing_date is None


def test_cancel_is_terminal():
    service = make_service()
    machine = ClientServiceMachine(service)
    machine.cancel()

    assert service.status == ClientServiceStatus.CANCELLED.value
    with pytest.raises(InvalidTransitionError, match="already cancelled"):
        machine.cancel()
    with pytest.raises(InvalidTransitionError):
        machine.resume(date(2026, 3, 1))


def test_recurring_amount_per_unit():
    service = make_service()
    service.units = 3
    assert service.recurring_amount == 1000

    service.service_definition.recurring_price_per_unit = True
    assert service.recurring_amount == 3000

    service.custom_recurring_price = 800
    assert service.recurring_amount == 2400
