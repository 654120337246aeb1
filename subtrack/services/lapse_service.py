# subtrack/services/lapse_service.py
"""
Out-of-band status policy. Runs from the scheduler, never from reconcile().

- a recurring subscription whose expected charge is overdue by more than one
  full cycle past next_renewal goes to `on_hold`
- a `one_time` subscription is `expired`

Only subscriptions the user has not removed and whose status is still
active-ish are touched; user-set statuses are left alone.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from subtrack import models
from subtrack.enums import ACTIVEISH_STATUSES, BillingCycle, SubscriptionStatus, RECURRING_CYCLES
from subtrack.services.billing_dates import cycle_period

log = logging.getLogger("subtrack.lapse_service")


def mark_lapsed_subscriptions(db: Session, user_id: Optional[int] = None, now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    stmt = select(models.Subscription).where(
        models.Subscription.deleted_at.is_(None),
        models.Subscription.status.in_([s.value for s in ACTIVEISH_STATUSES]),
    )
    if user_id is not None:
        stmt = stmt.where(models.Subscription.user_id == user_id)

    changed = 0
    for sub in db.execute(stmt).scalars():
        cycle = BillingCycle(sub.billing_cycle)

        if cycle == BillingCycle.ONE_TIME:
            sub.status = SubscriptionStatus.EXPIRED.value
            sub.lapse_flagged = True
            changed += 1
            continue

        if cycle not in RECURRING_CYCLES or sub.next_renewal is None:
            continue

        if now > sub.next_renewal + cycle_period(cycle):
            log.info(
                "subscription id=%s service=%s overdue since %s -> on_hold",
                sub.id, sub.service, sub.next_renewal,
            )
            sub.status = SubscriptionStatus.ON_HOLD.value
            sub.lapse_flagged = True
            changed += 1

    if changed:
        db.commit()
    return changed
