from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, Numeric, Boolean,
    ForeignKey, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship

from subtrack.db import Base
from subtrack.enums import BillingCycle, ChargeKind, SubscriptionStatus


class Subscription(Base):
    """
    Aggregate over every charge sharing (user, service, currency).
    """
    __tablename__ = "subscriptions"
    __table_args__ = (
        UniqueConstraint("user_id", "service_normalized", "currency", name="uq_subscription_user_service_currency"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    service = Column(String(255), nullable=False)
    # lookup key: service.strip().lower(); display name stays in `service`
    service_normalized = Column(String(255), nullable=False)
    currency = Column(String(8), nullable=False, default="USD")
    category = Column(String(64), nullable=False, default="Other")

    billing_cycle = Column(String(16), nullable=False, default=BillingCycle.UNKNOWN.value)
    status = Column(String(16), nullable=False, default=SubscriptionStatus.ACTIVE.value)
    lapse_flagged = Column(Boolean, nullable=False, default=False)

    monthly_amount = Column(Numeric(12, 4), nullable=False, default=0)
    estimated_monthly_spend = Column(Numeric(12, 4), nullable=False, default=0)

    first_charge_at = Column(DateTime, nullable=True)
    last_charge_at = Column(DateTime, nullable=True)
    next_renewal = Column(DateTime, nullable=True)

    total_charges = Column(Integer, nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)

    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    charges = relationship("Charge", back_populates="subscription")


class Charge(Base):
    """
    One financial event. Re-ingesting the same upstream message is a no-op,
    enforced by the (user_id, source_message_id) unique key.
    """
    __tablename__ = "charges"
    __table_args__ = (
        UniqueConstraint("user_id", "source_message_id", name="uq_charge_user_source"),
        Index("ix_charges_user_charged_at", "user_id", "charged_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True, index=True)

    service = Column(String(255), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False, default="USD")
    billing_cycle = Column(String(16), nullable=False, default=BillingCycle.UNKNOWN.value)
    kind = Column(String(32), nullable=False, default=ChargeKind.OTHER.value)
    category = Column(String(64), nullable=False, default="Other")

    charged_at = Column(DateTime, nullable=False)
    source_message_id = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    subscription = relationship("Subscription", back_populates="charges")


__all__ = ["Subscription", "Charge"]
