"""
Client payment endpoints.
Start a gateway purchase, poll its status and browse payment history.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from billing.api.deps import get_current_user_id, get_payment_service, raise_http_error
from billing.exceptions import BillingError
from billing.fsm.states import OrderItemType, PaymentMethod
from billing.models.payment import Payment
from billing.services.payment_service import PaymentService

router = APIRouter()
logger = logging.getLogger(__name__)


class InitiatePaymentRequest(BaseModel):
    """Request body for starting a purchase. Amount is in cents."""
    item_type: OrderItemType
    item_id: uuid.UUID
    amount: int = Field(gt=0)
    quantity: int = Field(default=1, ge=1)
    method: PaymentMethod = PaymentMethod.PAYNOW_WEB
    description: Optional[str] = None


class PaymentStatusRequest(BaseModel):
    """Request body for polling a payment."""
    poll_url: str


def payment_to_dict(payment: Payment) -> dict:
    return {
        "id": str(payment.id),
        "reference": payment.reference,
        "amount": payment.amount,
        "currency": payment.currency,
        "method": payment.method,
        "status": payment.status,
        "external_transaction_id": payment.external_transaction_id,
        "error_message": payment.error_message,
        "created_at": payment.created_at.isoformat() if payment.created_at else None,
        "completed_at": payment.completed_at.isoformat() if payment.completed_at else None,
    }


@router.post("/initiate")
async def initiate_payment(
    request: InitiatePaymentRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Create a pending payment and order, then hand off to the gateway.

    A gateway rejection is not an HTTP error: the client gets
    `success: false` and the failure reason.
    """
    try:
        result = await service.initiate_purchase(
            user_id=user_id,
            item_type=request.item_type,
            item_id=request.item_id,
            amount=request.amount,
            quantity=request.quantity,
            method=request.method,
            description=request.description,
        )
    except BillingError as e:
        raise_http_error(e)

    return {
        "success": result.success,
        "payment_id": str(result.payment_id) if result.payment_id else None,
        "reference": result.reference,
        "redirect_url": result.redirect_url,
        "poll_url": result.poll_handle,
        "error": result.error,
    }


@router.post("/status")
async def check_payment_status(
    request: PaymentStatusRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: PaymentService = Depends(get_payment_service),
):
    """Poll the gateway and apply a terminal result to the ledger."""
    try:
        result = await service.poll_and_reconcile(request.poll_url, user_id=user_id)
    except BillingError as e:
        raise_http_error(e)

    return {
        "status": result.status,
        "paid": result.paid,
        "payment_status": result.payment_status.value if result.payment_status else None,
        "amount": result.amount,
        "reference": result.reference,
    }


@router.get("/history")
async def payment_history(
    limit: int = Query(50, ge=1, le=200),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: PaymentService = Depends(get_payment_service),
):
    payments = await service.get_payment_history(user_id, limit=limit)
    return {"payments": [payment_to_dict(p) for p in payments]}


@router.get("/{payment_id}")
async def get_payment(
    payment_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.get_payment(payment_id)
    if not payment or payment.user_id != user_id:
        raise HTTPException(status_code=404, detail="Payment not found")
    return payment_to_dict(payment)
