# subtrack/models/__init__.py
"""
Models aggregator.

Importing this package registers every table on subtrack.db.Base, so other
modules can `from subtrack.models import User, Subscription, Charge, ...`.
"""

from subtrack.models.auth_models import User
from subtrack.models.ledger_models import Subscription, Charge
from subtrack.models.suggestion_models import PendingSubscriptionSuggestion, IgnoredSender

__all__ = [
    "User",
    "Subscription",
    "Charge",
    "PendingSubscriptionSuggestion",
    "IgnoredSender",
]
