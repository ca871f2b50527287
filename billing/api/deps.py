import uuid
from typing import NoReturn, Optional

from fastapi import Cookie, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from billing.config import settings
from billing.database import get_db
from billing.exceptions import (
    BillingError,
    DuplicateReferenceError,
    GatewayTimeoutError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from billing.services.gateway import PaymentGateway
from billing.services.maintenance_service import MaintenanceService
from billing.services.payment_service import PaymentService
from billing.services.paynow_service import get_gateway
from billing.services.subscription_service import SubscriptionService


async def get_admin_user(
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key"),
    admin_key_cookie: Optional[str] = Cookie(None, alias="admin_key"),
) -> str:
    """
    Validate the Admin Key from Header or Cookie.
    Returns the key if valid, raises 401 otherwise.
    """
    key = x_admin_key or admin_key_cookie
    valid_key = settings.admin_api_key

    if not key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing admin key",
        )

    if not valid_key or key != valid_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin key",
        )

    return key


async def get_admin_id(
    _: str = Depends(get_admin_user),
    x_admin_id: Optional[str] = Header(None, alias="X-Admin-Id"),
) -> str:
    """Identity recorded as `confirmed_by` on cash confirmations."""
    return x_admin_id or "admin"


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> uuid.UUID:
    """
    Authenticated client id.
    Set by the upstream auth gateway after it validates the session.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
        )


def get_payment_service(
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
) -> PaymentService:
    return PaymentService(db, gateway)


def get_subscription_service(db: AsyncSession = Depends(get_db)) -> SubscriptionService:
    return SubscriptionService(db)


def get_maintenance_service(db: AsyncSession = Depends(get_db)) -> MaintenanceService:
    return MaintenanceService(db)


def raise_http_error(exc: BillingError) -> NoReturn:
    """Translate a domain error into the matching HTTP response."""
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, PermissionDeniedError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, (InvalidTransitionError, DuplicateReferenceError)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, ValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, GatewayTimeoutError):
        code = status.HTTP_504_GATEWAY_TIMEOUT
    else:
        code = status.HTTP_502_BAD_GATEWAY
    raise HTTPException(status_code=code, detail=str(exc)) from exc
