# subtrack/enums.py
"""
Closed value sets shared by models, schemas and services.

Stored as plain text columns; the API boundary rejects anything outside these sets.
"""

from enum import Enum


class Plan(str, Enum):
    FREE = "free"
    PRO = "pro"
    PREMIUM = "premium"


PAID_PLANS = (Plan.PRO, Plan.PREMIUM)


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"
    WEEKLY = "weekly"
    ONE_TIME = "one_time"
    UNKNOWN = "unknown"


RECURRING_CYCLES = (BillingCycle.MONTHLY, BillingCycle.YEARLY, BillingCycle.WEEKLY)


class ChargeKind(str, Enum):
    SUBSCRIPTION = "subscription"
    ONE_TIME_CHARGE = "one_time_charge"
    MARKETING = "marketing"
    NEWSLETTER = "newsletter"
    OTHER = "other"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    ON_HOLD = "on_hold"
    CANCELED = "canceled"
    TRIAL = "trial"
    EXPIRED = "expired"
    UNKNOWN = "unknown"


# statuses the lapse policy is still allowed to move
ACTIVEISH_STATUSES = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIAL,
    SubscriptionStatus.PAST_DUE,
    SubscriptionStatus.UNKNOWN,
)


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IGNORED = "ignored"
