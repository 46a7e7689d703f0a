"""
Calendar helpers for billing periods ("YYYY-MM" month buckets)
"""
import calendar
from datetime import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta


def billing_period_for(moment: datetime) -> str:
    """Return the "YYYY-MM" billing period containing ``moment``"""
    return moment.strftime("%Y-%m")


def previous_billing_period(now: Optional[datetime] = None) -> str:
    """Return the billing period for the calendar month before ``now``"""
    return billing_period_for((now or datetime.utcnow()) - relativedelta(months=1))


def add_months(moment: datetime, months: int = 1) -> datetime:
    """
    Shift ``moment`` by whole calendar months

    The day is clamped to the end of shorter months (31 Jan + 1 month -> 28/29 Feb).
    """
    return moment + relativedelta(months=months)


def days_remaining_in_month(moment: datetime) -> int:
    """Number of days left in the calendar month after ``moment``'s day"""
    last_day = calendar.monthrange(moment.year, moment.month)[1]
    return last_day - moment.day


def is_valid_billing_period(value: str) -> bool:
    try:
        datetime.strptime(value, "%Y-%m")
    except (TypeError, ValueError):
        return False
    return len(value) == 7
