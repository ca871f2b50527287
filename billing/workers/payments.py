"""
Payments Worker - settle payments whose gateway callback never arrived.
"""

import asyncio
import logging

from billing.database import get_db_context
from billing.services.payment_service import PaymentService
from billing.services.paynow_service import PaynowGateway
from billing.workers.billing import run_exclusive
from billing.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _sweep() -> dict:
    async with get_db_context() as db:
        settled = await PaymentService(db, PaynowGateway()).reconcile_stale_payments()
    return {"settled": settled}


@celery_app.task(bind=True, max_retries=3)
def reconcile_stale_payments(self):
    """Poll the gateway for PENDING payments nobody reported on."""
    try:
        summary = asyncio.run(run_exclusive("stale-payments", _sweep))
        return {"status": "skipped"} if summary is None else {"status": "success", **summary}
    except Exception as e:
        logger.error(f"Stale payment sweep failed: {e}", exc_info=True)
        raise self.retry(exc=e, countdown=60)
