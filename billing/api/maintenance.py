"""
Client maintenance endpoints.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException

from billing.api.deps import get_current_user_id, get_maintenance_service, raise_http_error
from billing.exceptions import BillingError
from billing.models.maintenance import Maintenance
from billing.services.maintenance_service import MaintenanceService

router = APIRouter()
logger = logging.getLogger(__name__)


def maintenance_to_dict(maintenance: Maintenance) -> dict:
    return {
        "id": str(maintenance.id),
        "project_id": str(maintenance.project_id),
        "project_name": maintenance.project.name,
        "monthly_fee": maintenance.monthly_fee,
        "is_active": maintenance.is_active,
        "current_period_start": maintenance.current_period_start.isoformat(),
        "current_period_end": maintenance.current_period_end.isoformat(),
        "is_paid_for_current_period": maintenance.is_paid_for_current_period,
        "paid_in_cash": maintenance.cash.claimed,
        "cash_confirmed": maintenance.cash.confirmed,
        "paid_at": maintenance.paid_at.isoformat() if maintenance.paid_at else None,
        "reminder_count": maintenance.reminder_count,
        "notes": maintenance.notes,
        "end_date": maintenance.end_date.isoformat() if maintenance.end_date else None,
    }


@router.get("")
async def my_maintenance(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: MaintenanceService = Depends(get_maintenance_service),
):
    contracts = await service.list_for_user(user_id)
    return {"maintenance": [maintenance_to_dict(m) for m in contracts]}


@router.get("/{maintenance_id}")
async def get_maintenance(
    maintenance_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: MaintenanceService = Depends(get_maintenance_service),
):
    try:
        maintenance = await service.get(maintenance_id)
    except BillingError as e:
        raise_http_error(e)
    if maintenance.project.user_id != user_id:
        raise HTTPException(status_code=403, detail="Maintenance contract belongs to another user")
    return maintenance_to_dict(maintenance)


@router.post("/{maintenance_id}/pay-cash")
async def pay_in_cash(
    maintenance_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: MaintenanceService = Depends(get_maintenance_service),
):
    """Report a cash payment for the current period."""
    try:
        maintenance = await service.mark_paid_in_cash(maintenance_id, user_id)
    except BillingError as e:
        raise_http_error(e)
    return maintenance_to_dict(maintenance)
