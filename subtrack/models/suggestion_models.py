from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, UniqueConstraint

from subtrack.db import Base
from subtrack.enums import BillingCycle, ChargeKind, SuggestionStatus


class PendingSubscriptionSuggestion(Base):
    """
    Classifier output waiting for the user to accept or ignore it.
    pending -> accepted | ignored, both terminal.
    """
    __tablename__ = "subscription_suggestions"
    __table_args__ = (
        UniqueConstraint("user_id", "source_message_id", name="uq_suggestion_user_source"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    source_message_id = Column(String(255), nullable=False)
    sender = Column(String(320), nullable=False)
    subject = Column(String(512), nullable=False, default="")

    service = Column(String(255), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(8), nullable=False, default="USD")
    category = Column(String(64), nullable=False, default="Other")
    billing_cycle = Column(String(16), nullable=False, default=BillingCycle.UNKNOWN.value)
    kind = Column(String(32), nullable=False, default=ChargeKind.OTHER.value)
    charged_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    status = Column(String(16), nullable=False, default=SuggestionStatus.PENDING.value, index=True)
    decided_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class IgnoredSender(Base):
    __tablename__ = "ignored_senders"
    __table_args__ = (
        UniqueConstraint("user_id", "sender", name="uq_ignored_sender_user_sender"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    sender = Column(String(320), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


__all__ = ["PendingSubscriptionSuggestion", "IgnoredSender"]
