"""
Celery application configuration.
"""

from celery import Celery
from celery.schedules import crontab

from billing.config import settings

# Create Celery app
celery_app = Celery(
    "billing",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "billing.workers.billing",
        "billing.workers.payments",
    ],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.billing_timezone,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=900,  # 15 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)

# Beat schedule for periodic tasks (billing timezone)
celery_app.conf.beat_schedule = {
    # Recurring charges daily at 1:00 AM
    "daily-recurring-billing": {
        "task": "billing.workers.billing.process_recurring_billing",
        "schedule": crontab(hour=1, minute=0),
    },
    # Upcoming billing reminders daily at 9:00 AM
    "daily-billing-reminders": {
        "task": "billing.workers.billing.send_billing_reminders",
        "schedule": crontab(hour=9, minute=0),
    },
    # Stale pending payments every 15 minutes
    "stale-payment-sweep": {
        "task": "billing.workers.payments.reconcile_stale_payments",
        "schedule": crontab(minute="*/15"),
    },
}
