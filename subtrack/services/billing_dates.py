# subtrack/services/billing_dates.py
"""
Billing-cycle arithmetic. Pure functions, no I/O.

Month and year steps use relativedelta, so a charge on Jan 31 renews on the
last day of February rather than spilling into March.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from subtrack.enums import BillingCycle

_WEEKS_PER_MONTH = Decimal(52) / Decimal(12)

_ALIASES = {
    "month": BillingCycle.MONTHLY,
    "monthly": BillingCycle.MONTHLY,
    "year": BillingCycle.YEARLY,
    "yearly": BillingCycle.YEARLY,
    "annual": BillingCycle.YEARLY,
    "annually": BillingCycle.YEARLY,
    "week": BillingCycle.WEEKLY,
    "weekly": BillingCycle.WEEKLY,
    "one_time": BillingCycle.ONE_TIME,
    "one-time": BillingCycle.ONE_TIME,
    "unknown": BillingCycle.UNKNOWN,
}


def normalize_billing_cycle(value: Union[str, BillingCycle, None]) -> BillingCycle:
    """
    Boundary helper. A missing cycle means `unknown` (intentional default);
    an unrecognised value is an error, never silently mapped.
    """
    if isinstance(value, BillingCycle):
        return value
    if value is None or not str(value).strip():
        return BillingCycle.UNKNOWN
    cycle = _ALIASES.get(str(value).strip().lower())
    if cycle is None:
        raise ValueError(f"unknown billing cycle: {value!r}")
    return cycle


def cycle_period(cycle: BillingCycle) -> Optional[relativedelta]:
    if cycle == BillingCycle.MONTHLY:
        return relativedelta(months=1)
    if cycle == BillingCycle.YEARLY:
        return relativedelta(years=1)
    if cycle == BillingCycle.WEEKLY:
        return relativedelta(weeks=1)
    return None


def next_renewal(charged_at: datetime, cycle: BillingCycle) -> Optional[datetime]:
    if cycle == BillingCycle.WEEKLY:
        return charged_at + timedelta(days=7)
    period = cycle_period(cycle)
    if period is None:
        return None
    return charged_at + period


def monthly_amount(cycle: BillingCycle, amount) -> Decimal:
    amount = Decimal(str(amount))
    if cycle == BillingCycle.MONTHLY:
        return amount
    if cycle == BillingCycle.YEARLY:
        return amount / 12
    if cycle == BillingCycle.WEEKLY:
        return amount * _WEEKS_PER_MONTH
    # one_time / unknown are not a monthly obligation
    return Decimal(0)
