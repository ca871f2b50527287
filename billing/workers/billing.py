"""
Billing Worker - daily recurring charge and reminder jobs.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from redis.exceptions import LockError

from billing.database import close_db, get_db_context
from billing.redis import RedisClient, job_lock
from billing.services.billing_scheduler import BillingScheduler, JobResult
from billing.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def run_exclusive(name: str, job: Callable[[], Awaitable[dict]]) -> Optional[dict]:
    """
    Run `job` unless another worker already holds the job lock.

    Engine and Redis connections are released afterwards because every
    Celery invocation runs on a fresh event loop.
    """
    lock = job_lock(name)
    try:
        if not await lock.acquire():
            logger.info(f"Job {name} already running elsewhere, skipping", extra={"job": name})
            return None
        try:
            return await job()
        finally:
            try:
                await lock.release()
            except LockError as e:
                logger.warning(f"Job {name} lock expired before release: {e}", extra={"job": name})
    finally:
        await RedisClient.close()
        await close_db()


def _summary(result: JobResult) -> dict:
    return {
        "processed": result.processed,
        "skipped": result.skipped,
        "failed": result.failed,
        "maintenance_processed": result.maintenance_processed,
    }


async def _charge() -> dict:
    async with get_db_context() as db:
        result = await BillingScheduler(db).run_charge_job()
    return _summary(result)


async def _remind() -> dict:
    async with get_db_context() as db:
        result = await BillingScheduler(db).run_reminder_job()
    return _summary(result)


@celery_app.task(bind=True, max_retries=3)
def process_recurring_billing(self):
    """Celery task for the daily charge job."""
    try:
        summary = asyncio.run(run_exclusive("charge", _charge))
        return {"status": "skipped"} if summary is None else {"status": "success", **summary}
    except Exception as e:
        logger.error(f"Recurring billing job failed: {e}", exc_info=True)
        raise self.retry(exc=e, countdown=300)


@celery_app.task(bind=True, max_retries=3)
def send_billing_reminders(self):
    """Celery task for the daily reminder job."""
    try:
        summary = asyncio.run(run_exclusive("reminder", _remind))
        return {"status": "skipped"} if summary is None else {"status": "success", **summary}
    except Exception as e:
        logger.error(f"Billing reminder job failed: {e}", exc_info=True)
        raise self.retry(exc=e, countdown=300)
