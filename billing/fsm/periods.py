"""
Billing period arithmetic.

Dates advance from the stored schedule, never from the time a job
happened to run, so late runs do not accumulate drift.
"""

import calendar
from datetime import date, datetime, timedelta
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from billing.config import settings


def billing_today(now: datetime) -> date:
    """Calendar date of `now` in the billing timezone."""
    return now.astimezone(ZoneInfo(settings.billing_timezone)).date()


def first_billing_date(today: date, cycle_days: int, recurring: bool) -> Optional[date]:
    """Billing date for a freshly provisioned or resumed subscription."""
    if not recurring:
        return None
    return today + timedelta(days=cycle_days)


def advance_billing_date(current: date, cycle_days: int) -> date:
    """Next billing date after `current`, exactly one cycle later."""
    return current + timedelta(days=cycle_days)


def add_months(value: date, months: int) -> date:
    """Shift by whole months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def end_of_month(value: date) -> date:
    return value.replace(day=calendar.monthrange(value.year, value.month)[1])


def month_period(start: date) -> Tuple[date, date]:
    """Period beginning at `start` and ending on the last day of its month."""
    return start, end_of_month(start)


def next_month_period(current_start: date) -> Tuple[date, date]:
    """Period following the one that began at `current_start`."""
    return month_period(add_months(current_start, 1))
