"""
Service lifecycle state machine.

All transitions are guarded: a request from a state that does not allow it
raises InvalidTransitionError before anything is modified.
"""

import logging
from datetime import date, datetime

from billing.exceptions import InvalidTransitionError
from billing.fsm.periods import first_billing_date
from billing.fsm.states import CashTrackKind, ClientServiceStatus
from billing.models.cash_track import CashTrack
from billing.models.client_service import ClientService

logger = logging.getLogger(__name__)


class ClientServiceMachine:
    """
    Drives one ClientService row through its lifecycle.

    States: PENDING_PAYMENT, ACTIVE, SUSPENDED, CANCELLED.
    The caller owns the database transaction and row lock.
    """

    def __init__(self, service: ClientService):
        self.service = service

    @property
    def status(self) -> ClientServiceStatus:
        return ClientServiceStatus(self.service.status)

    def _set_status(self, new_status: ClientServiceStatus) -> None:
        old_status = self.service.status
        self.service.status = new_status.value
        if old_status != new_status.value:
            logger.info(f"ClientService {self.service.id}: {old_status} -> {new_status.value}")

    def _gated_status(self) -> ClientServiceStatus:
        """ACTIVE iff every claimed cash track is confirmed, computed fresh."""
        if self.service.cash_gate_open:
            return ClientServiceStatus.ACTIVE
        return ClientServiceStatus.PENDING_PAYMENT

    def _get_track(self, kind: CashTrackKind) -> CashTrack:
        if kind is CashTrackKind.ONE_OFF:
            return self.service.one_off_cash
        return self.service.current_period_cash

    def _set_track(self, kind: CashTrackKind, track: CashTrack) -> None:
        if kind is CashTrackKind.ONE_OFF:
            self.service.one_off_cash = track
        else:
            self.service.current_period_cash = track

    # === Cash handshake ===

    def report_cash(self, kind: CashTrackKind) -> None:
        """Client says they paid in cash; activation waits for an admin."""
        if self.status not in (ClientServiceStatus.ACTIVE, ClientServiceStatus.PENDING_PAYMENT):
            raise InvalidTransitionError(
                f"Cannot report a cash payment on a {self.status.value.lower()} service"
            )
        track = self._get_track(kind)
        if track.confirmed:
            raise InvalidTransitionError("Cash payment already confirmed")
        if kind is CashTrackKind.ONE_OFF and self.service.one_off_price_paid:
            raise InvalidTransitionError("One-off price has already been paid")

        self._set_track(kind, track.claim())
        self._set_status(self._gated_status())

    def confirm_cash(self, kind: CashTrackKind, admin_id: str, now: datetime) -> None:
        """Admin confirms a reported cash payment and the gate is re-evaluated."""
        if self.status is ClientServiceStatus.CANCELLED:
            raise InvalidTransitionError("Cannot confirm a cash payment on a cancelled service")
        track = self._get_track(kind)
        if not track.claimed:
            raise InvalidTransitionError("Payment was not marked as cash")
        if track.confirmed:
            raise InvalidTransitionError("Cash payment already confirmed")

        self._set_track(kind, track.confirm(admin_id, now))
        if kind is CashTrackKind.ONE_OFF:
            self.service.one_off_price_paid = True

        # A suspended service keeps its pause; the confirmation is still recorded
        if self.status is not ClientServiceStatus.SUSPENDED:
            self._set_status(self._gated_status())

    # === Gateway payment ===

    def apply_gateway_payment(self) -> None:
        """
        One-off price settled through the gateway.

        Any pending one-off cash claim is superseded. Suspended and
        cancelled services keep their status.
        """
        if self.status is ClientServiceStatus.CANCELLED:
            raise InvalidTransitionError("Cannot activate a cancelled service")

        self.service.one_off_price_paid = True
        if self.service.one_off_cash.claimed and not self.service.one_off_cash.confirmed:
            self.service.one_off_cash = CashTrack()

        if self.status is not ClientServiceStatus.SUSPENDED:
            self._set_status(self._gated_status())

    # === Lifecycle ===

    def pause(self) -> None:
        if self.status is not ClientServiceStatus.ACTIVE:
            raise InvalidTransitionError("Can only pause an active service")
        self._set_status(ClientServiceStatus.SUSPENDED)

    def resume(self, today: date) -> None:
        """Suspended time is not credited back: billing restarts from today."""
        if self.status is not ClientServiceStatus.SUSPENDED:
            raise InvalidTransitionError("Can only resume a suspended service")

        self.service.next_billing_date = first_billing_date(
            today,
            self.service.service_definition.billing_cycle_days,
            self.service.enable_recurring,
        )
        self._set_status(self._gated_status())

    def cancel(self) -> None:
        if self.status is ClientServiceStatus.CANCELLED:
            raise InvalidTransitionError("Service is already cancelled")
        self._set_status(ClientServiceStatus.CANCELLED)

    def start_new_period(self) -> None:
        """A billing cycle elapsed; the cash track applies to the new period."""
        self.service.current_period_cash = CashTrack()
