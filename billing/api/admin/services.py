"""
Admin Service Endpoints.
Provisioning, cash confirmation and lifecycle control of client services.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from billing.api.deps import (
    get_admin_id,
    get_admin_user,
    get_subscription_service,
    raise_http_error,
)
from billing.api.services import client_service_to_dict
from billing.exceptions import BillingError
from billing.fsm.states import CashTrackKind
from billing.services.subscription_service import SubscriptionService

router = APIRouter(dependencies=[Depends(get_admin_user)])
logger = logging.getLogger(__name__)


class ProvisionRequest(BaseModel):
    """Request body for provisioning a service. Prices are in cents."""
    user_id: uuid.UUID
    service_definition_id: uuid.UUID
    units: int = Field(default=1, ge=1)
    enable_recurring: bool = False
    custom_recurring_price: Optional[int] = Field(default=None, ge=0)
    one_off_paid_in_cash: bool = False
    current_period_paid_in_cash: bool = False


class ConfirmCashRequest(BaseModel):
    track: CashTrackKind


@router.get("/services")
async def list_services(
    user_id: Optional[uuid.UUID] = None,
    service: SubscriptionService = Depends(get_subscription_service),
):
    services = await service.list_client_services(user_id=user_id)
    return {"services": [client_service_to_dict(s) for s in services]}


@router.post("/services/provision")
async def provision_service(
    request: ProvisionRequest,
    service: SubscriptionService = Depends(get_subscription_service),
):
    try:
        client_service = await service.provision(
            user_id=request.user_id,
            service_definition_id=request.service_definition_id,
            units=request.units,
            enable_recurring=request.enable_recurring,
            custom_recurring_price=request.custom_recurring_price,
            one_off_paid_in_cash=request.one_off_paid_in_cash,
            current_period_paid_in_cash=request.current_period_paid_in_cash,
        )
    except BillingError as e:
        raise_http_error(e)

    return client_service_to_dict(client_service)


@router.post("/services/{client_service_id}/confirm-cash")
async def confirm_cash_payment(
    client_service_id: uuid.UUID,
    request: ConfirmCashRequest,
    admin_id: str = Depends(get_admin_id),
    service: SubscriptionService = Depends(get_subscription_service),
):
    try:
        client_service = await service.confirm_cash_payment(client_service_id, request.track, admin_id)
    except BillingError as e:
        raise_http_error(e)

    return client_service_to_dict(client_service)


@router.post("/services/{client_service_id}/pause")
async def pause_service(
    client_service_id: uuid.UUID,
    service: SubscriptionService = Depends(get_subscription_service),
):
    try:
        client_service = await service.pause(client_service_id)
    except BillingError as e:
        raise_http_error(e)

    return client_service_to_dict(client_service)


@router.post("/services/{client_service_id}/resume")
async def resume_service(
    client_service_id: uuid.UUID,
    service: SubscriptionService = Depends(get_subscription_service),
):
    try:
        client_service = await service.resume(client_service_id)
    except BillingError as e:
        raise_http_error(e)

    return client_service_to_dict(client_service)


@router.post("/services/{client_service_id}/cancel")
async def cancel_service(
    client_service_id: uuid.UUID,
    service: SubscriptionService = Depends(get_subscription_service),
):
    try:
        client_service = await service.cancel(client_service_id)
    except BillingError as e:
        raise_http_error(e)

    return client_service_to_dict(client_service)
