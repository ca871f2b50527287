"""
Payment gateway contract.

The ledger only talks to a PaymentGateway; production wires in
PaynowGateway, tests wire in a fake.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from billing.fsm.states import PaymentStatus, normalize_gateway_status


@dataclass(frozen=True)
class InitiationResult:
    """Outcome of asking the gateway to start a hosted payment."""

    success: bool
    redirect_url: Optional[str] = None
    poll_handle: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class GatewayStatus:
    """Status reported by the gateway for one transaction."""

    status: str
    amount: Optional[int] = None
    reference: Optional[str] = None
    external_reference: Optional[str] = None

    @property
    def normalized(self) -> PaymentStatus:
        return normalize_gateway_status(self.status)


class PaymentGateway(Protocol):
    """Hosted payment gateway. Amounts are minor units."""

    async def initiate(
        self,
        reference: str,
        payer_email: str,
        amount: int,
        method: str,
        description: str,
        return_url: str,
    ) -> InitiationResult:
        ...

    async def check_status(self, poll_handle: str) -> GatewayStatus:
        """Raises GatewayTimeoutError on timeout, GatewayError otherwise."""
        ...
