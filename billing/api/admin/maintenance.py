"""
Admin Maintenance Endpoints.
Contract setup, cash confirmation and period management.
"""

import logging
import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from billing.api.deps import (
    get_admin_id,
    get_admin_user,
    get_maintenance_service,
    raise_http_error,
)
from billing.api.maintenance import maintenance_to_dict
from billing.exceptions import BillingError
from billing.services.maintenance_service import MaintenanceService

router = APIRouter(dependencies=[Depends(get_admin_user)])
logger = logging.getLogger(__name__)


class CreateMaintenanceRequest(BaseModel):
    """Monthly fee is in cents."""
    project_id: uuid.UUID
    monthly_fee: int = Field(ge=0)
    start_date: Optional[date] = None


class DeactivateRequest(BaseModel):
    end_date: Optional[date] = None


class NotesRequest(BaseModel):
    notes: str


class GatewayPaidRequest(BaseModel):
    user_id: uuid.UUID


@router.get("/maintenance")
async def list_maintenance(
    include_inactive: bool = False,
    service: MaintenanceService = Depends(get_maintenance_service),
):
    contracts = await service.list_all(include_inactive=include_inactive)
    return {"maintenance": [maintenance_to_dict(m) for m in contracts]}


@router.get("/maintenance/overdue")
async def overdue_maintenance(service: MaintenanceService = Depends(get_maintenance_service)):
    contracts = await service.get_overdue()
    return {"maintenance": [maintenance_to_dict(m) for m in contracts]}


@router.get("/maintenance/due-soon")
async def maintenance_due_soon(
    days: int = 7,
    service: MaintenanceService = Depends(get_maintenance_service),
):
    contracts = await service.get_due_soon(days=days)
    return {"maintenance": [maintenance_to_dict(m) for m in contracts]}


@router.post("/maintenance")
async def create_maintenance(
    request: CreateMaintenanceRequest,
    service: MaintenanceService = Depends(get_maintenance_service),
):
    try:
        maintenance = await service.create_or_update(
            request.project_id,
            request.monthly_fee,
            start_date=request.start_date,
        )
    except BillingError as e:
        raise_http_error(e)
    return maintenance_to_dict(maintenance)


@router.post("/maintenance/{maintenance_id}/confirm-cash")
async def confirm_cash_payment(
    maintenance_id: uuid.UUID,
    admin_id: str = Depends(get_admin_id),
    service: MaintenanceService = Depends(get_maintenance_service),
):
    try:
        maintenance = await service.confirm_cash_payment(maintenance_id, admin_id)
    except BillingError as e:
        raise_http_error(e)
    return maintenance_to_dict(maintenance)


@router.post("/maintenance/{maintenance_id}/mark-paid")
async def mark_paid_via_gateway(
    maintenance_id: uuid.UUID,
    request: GatewayPaidRequest,
    service: MaintenanceService = Depends(get_maintenance_service),
):
    """Record a gateway payment made for this contract outside the ledger."""
    try:
        maintenance = await service.mark_paid_via_gateway(maintenance_id, request.user_id)
    except BillingError as e:
        raise_http_error(e)
    return maintenance_to_dict(maintenance)


@router.post("/maintenance/{maintenance_id}/advance-period")
async def advance_period(
    maintenance_id: uuid.UUID,
    service: MaintenanceService = Depends(get_maintenance_service),
):
    try:
        maintenance = await service.advance_to_next_period(maintenance_id)
    except BillingError as e:
        raise_http_error(e)
    return maintenance_to_dict(maintenance)


@router.post("/maintenance/{maintenance_id}/reminder-sent")
async def reminder_sent(
    maintenance_id: uuid.UUID,
    service: MaintenanceService = Depends(get_maintenance_service),
):
    try:
        maintenance = await service.record_reminder_sent(maintenance_id)
    except BillingError as e:
        raise_http_error(e)
    return maintenance_to_dict(maintenance)


@router.post("/maintenance/{maintenance_id}/deactivate")
async def deactivate_maintenance(
    maintenance_id: uuid.UUID,
    request: DeactivateRequest,
    service: MaintenanceService = Depends(get_maintenance_service),
):
    try:
        maintenance = await service.deactivate(maintenance_id, end_date=request.end_date)
    except BillingError as e:
        raise_http_error(e)
    return maintenance_to_dict(maintenance)


@router.put("/maintenance/{maintenance_id}/notes")
async def update_notes(
    maintenance_id: uuid.UUID,
    request: NotesRequest,
    service: MaintenanceService = Depends(get_maintenance_service),
):
    try:
        maintenance = await service.add_notes(maintenance_id, request.notes)
    except BillingError as e:
        raise_http_error(e)
    return maintenance_to_dict(maintenance)
