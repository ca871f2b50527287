"""
Paynow Service - hosted payments via the Paynow HTTP interface.
"""

import hashlib
import hmac
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping, Optional
from urllib.parse import parse_qsl

import httpx

from billing.config import settings
from billing.exceptions import GatewayError, GatewayTimeoutError
from billing.services.gateway import GatewayStatus, InitiationResult

logger = logging.getLogger(__name__)


def format_major_units(amount: int) -> str:
    """Minor units -> "15.00" as Paynow expects."""
    value = (Decimal(amount) / Decimal(100)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return format(value, "f")


def parse_major_units(value: Optional[str]) -> Optional[int]:
    """ "15.00" -> 1500. Returns None for missing or malformed values."""
    if not value:
        return None
    try:
        return int((Decimal(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except ArithmeticError:
        return None


def paynow_hash(values: Mapping[str, str], integration_key: str) -> str:
    """
    Paynow message hash.

    SHA512 over every field value except `hash`, in message order,
    followed by the integration key. Upper-case hex.
    """
    payload = "".join(str(v) for k, v in values.items() if k.lower() != "hash")
    return hashlib.sha512((payload + integration_key).encode("utf-8")).hexdigest().upper()


def verify_paynow_hash(values: Mapping[str, str], integration_key: str) -> bool:
    """Check the `hash` field of an inbound Paynow message."""
    received = values.get("hash") or ""
    expected = paynow_hash(values, integration_key)
    return hmac.compare_digest(expected, received.upper())


class PaynowGateway:
    """PaymentGateway implementation for Paynow (Zimbabwe)."""

    def __init__(
        self,
        integration_id: Optional[str] = None,
        integration_key: Optional[str] = None,
        result_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.integration_id = integration_id or settings.paynow_integration_id
        self.integration_key = integration_key or settings.paynow_integration_key
        self.result_url = result_url or settings.paynow_result_url
        self.timeout = timeout or settings.gateway_timeout_seconds

    async def initiate(
        self,
        reference: str,
        payer_email: str,
        amount: int,
        method: str,
        description: str,
        return_url: str,
    ) -> InitiationResult:
        """
        Start a web transaction.

        Never raises: transport errors and gateway rejections come back as
        a failed InitiationResult so the caller can mark the payment FAILED.
        """
        if not self.integration_id or not self.integration_key:
            return InitiationResult(success=False, error="Paynow integration credentials not configured")

        fields = {
            "id": self.integration_id,
            "reference": reference,
            "amount": format_major_units(amount),
            "additionalinfo": description,
            "returnurl": return_url,
            "resulturl": self.result_url,
            "authemail": payer_email,
            "status": "Message",
        }
        fields["hash"] = paynow_hash(fields, self.integration_key)

        logger.info(f"Paynow initiate: reference={reference} amount={fields['amount']} method={method}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(settings.paynow_initiate_url, data=fields)
        except httpx.TimeoutException:
            logger.error(f"Paynow initiate timeout for {reference}")
            return InitiationResult(success=False, error="Payment gateway timed out")
        except httpx.HTTPError as e:
            logger.error(f"Paynow initiate error for {reference}: {e}")
            return InitiationResult(success=False, error=f"Payment gateway unreachable: {e}")

        if response.status_code != 200:
            logger.error(f"Paynow HTTP error: {response.status_code} {response.text}")
            return InitiationResult(success=False, error=f"Payment gateway returned {response.status_code}")

        data = dict(parse_qsl(response.text))
        if data.get("status", "").lower() != "ok":
            error = data.get("error") or "Payment initiation failed"
            logger.error(f"Paynow rejected {reference}: {error}")
            return InitiationResult(success=False, error=error)

        if not verify_paynow_hash(data, self.integration_key):
            logger.error(f"Paynow initiate response hash mismatch for {reference}")
            return InitiationResult(success=False, error="Payment gateway response could not be verified")

        return InitiationResult(
            success=True,
            redirect_url=data.get("browserurl"),
            poll_handle=data.get("pollurl"),
        )

    async def check_status(self, poll_handle: str) -> GatewayStatus:
        """Poll a transaction. Timeouts are transient, never a failed payment."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(poll_handle)
        except httpx.TimeoutException as e:
            raise GatewayTimeoutError("Payment gateway status check timed out") from e
        except httpx.HTTPError as e:
            raise GatewayError(f"Failed to check payment status: {e}") from e

        if response.status_code != 200:
            raise GatewayError(f"Payment gateway returned {response.status_code}")

        data = dict(parse_qsl(response.text))
        if self.integration_key and not verify_paynow_hash(data, self.integration_key):
            raise GatewayError("Payment gateway status could not be verified")

        return GatewayStatus(
            status=data.get("status", ""),
            amount=parse_major_units(data.get("amount")),
            reference=data.get("reference"),
            external_reference=data.get("paynowreference"),
        )


def get_gateway() -> PaynowGateway:
    """Dependency returning the configured gateway."""
    return PaynowGateway()
