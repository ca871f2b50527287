"""
Client service endpoints.
Clients see their subscriptions and report cash payments.
"""

import logging
import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from billing.api.deps import get_current_user_id, get_subscription_service, raise_http_error
from billing.exceptions import BillingError
from billing.fsm.states import CashTrackKind
from billing.models.client_service import ClientService
from billing.services.subscription_service import SubscriptionService

router = APIRouter()
logger = logging.getLogger(__name__)


class ReportCashRequest(BaseModel):
    track: CashTrackKind


def client_service_to_dict(service: ClientService) -> dict:
    definition = service.service_definition
    return {
        "id": str(service.id),
        "user_id": str(service.user_id),
        "service_definition_id": str(service.service_definition_id),
        "service_name": definition.name,
        "units": service.units,
        "status": service.status,
        "enable_recurring": service.enable_recurring,
        "recurring_amount": service.recurring_amount,
        "next_billing_date": service.next_billing_date.isoformat() if service.next_billing_date else None,
        "one_off_price_paid": service.one_off_price_paid,
        "one_off_cash": {
            "claimed": service.one_off_cash.claimed,
            "confirmed": service.one_off_cash.confirmed,
        },
        "current_period_cash": {
            "claimed": service.current_period_cash.claimed,
            "confirmed": service.current_period_cash.confirmed,
        },
    }


@router.get("")
async def my_services(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: SubscriptionService = Depends(get_subscription_service),
):
    services = await service.list_client_services(user_id=user_id)
    return {"services": [client_service_to_dict(s) for s in services]}


@router.post("/{client_service_id}/report-cash")
async def report_cash_payment(
    client_service_id: uuid.UUID,
    request: ReportCashRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Tell us you paid in cash. The service activates once an admin confirms."""
    try:
        client_service = await service.report_cash_payment(
            client_service_id,
            request.track,
            user_id=user_id,
        )
    except BillingError as e:
        raise_http_error(e)

    return client_service_to_dict(client_service)
