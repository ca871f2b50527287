"""
Paynow Result URL Handler.
Receives transaction status updates and hands them to the ledger.
"""

import logging

from fastapi import APIRouter, Depends, Request

from billing.api.deps import get_payment_service
from billing.services.payment_service import PaymentService

router = APIRouter()
logger = logging.getLogger(__name__)


async def read_payload(request: Request) -> dict:
    """Paynow posts form data; JSON is accepted for manual replays."""
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        data = await request.json()
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}
    form = await request.form()
    return {k: str(v) for k, v in form.items()}


@router.post("/paynow")
async def paynow_webhook(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    """
    Handle a Paynow status update.

    Always acknowledged with 200 so the gateway stops retrying; anything
    that could not be processed is logged and left for the stale payment
    sweep.
    """
    try:
        payload = await read_payload(request)
        logger.info(
            f"Paynow callback received: reference={payload.get('reference')} status={payload.get('status')}",
            extra={"reference": payload.get("reference")},
        )
        await service.handle_webhook(payload)
    except Exception as e:
        logger.error(f"Error processing Paynow callback: {e}", exc_info=True)
        await service.db.rollback()

    return {"status": "ok"}
