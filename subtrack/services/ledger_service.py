# -----------------------------------------------------------
# subtrack/services/ledger_service.py
# Charge ingestion and the Subscription aggregate built from it
# -----------------------------------------------------------
"""
reconcile() is the only way a charge enters the ledger. It is idempotent on
(user_id, source_message_id) and keeps every subscription's totals equal to
the count / sum of the charges linked to it.

Uniqueness is enforced by the database (unique constraints) and every insert
that may race runs inside a SAVEPOINT, so a losing writer rolls back just that
insert and continues with the row the winner created.

Nothing in here commits; callers own the transaction.
"""

import logging
import os
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, List, Dict

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from subtrack import models
from subtrack.config import UPCOMING_RENEWAL_DAYS
from subtrack.enums import ACTIVEISH_STATUSES, BillingCycle, SubscriptionStatus
from subtrack.errors import NotFound
from subtrack.schemas import ChargeRecord, SubscriptionCreate, SubscriptionUpdate
from subtrack.services.billing_dates import monthly_amount, next_renewal

logger = logging.getLogger("subtrack.ledger_service")
logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())


def _now() -> datetime:
    return datetime.utcnow()


# -------------------------------------------------
# LOOKUPS
# -------------------------------------------------
def _find_charge(db: Session, user_id: int, source_message_id: str) -> Optional[models.Charge]:
    return db.execute(
        select(models.Charge).where(
            models.Charge.user_id == user_id,
            models.Charge.source_message_id == source_message_id,
        )
    ).scalars().first()


def normalize_service(service: str) -> str:
    return service.strip().lower()


def _find_subscription(db: Session, user_id: int, service: str, currency: str) -> Optional[models.Subscription]:
    return db.execute(
        select(models.Subscription).where(
            models.Subscription.user_id == user_id,
            models.Subscription.service_normalized == normalize_service(service),
            models.Subscription.currency == currency,
        )
    ).scalars().first()


def charge_exists(db: Session, user_id: int, source_message_id: str) -> bool:
    return _find_charge(db, user_id, source_message_id) is not None


# -------------------------------------------------
# AGGREGATE MATH
# -------------------------------------------------
def _derive_from_latest(sub: models.Subscription, cycle: BillingCycle, amount: Decimal, charged_at: datetime) -> None:
    # the latest charge alone decides the cycle; an anomalous one-off overwrites history
    sub.billing_cycle = cycle.value
    sub.monthly_amount = monthly_amount(cycle, amount)
    sub.estimated_monthly_spend = sub.monthly_amount
    sub.next_renewal = next_renewal(charged_at, cycle)


def _mark_past_due(sub: models.Subscription) -> None:
    if sub.status in [s.value for s in ACTIVEISH_STATUSES] and sub.status != SubscriptionStatus.PAST_DUE.value:
        logger.info("subscription id=%s service=%s -> past_due", sub.id, sub.service)
        sub.status = SubscriptionStatus.PAST_DUE.value


def _new_subscription(user_id: int, record: ChargeRecord) -> models.Subscription:
    sub = models.Subscription(
        user_id=user_id,
        service=record.service,
        service_normalized=normalize_service(record.service),
        currency=record.currency,
        category=record.category,
        status=SubscriptionStatus.PAST_DUE.value if record.past_due else SubscriptionStatus.ACTIVE.value,
        lapse_flagged=False,
        first_charge_at=record.charged_at,
        last_charge_at=record.charged_at,
        total_charges=1,
        total_amount=record.amount,
    )
    _derive_from_latest(sub, record.billing_cycle, record.amount, record.charged_at)
    return sub


def _apply_charge(sub: models.Subscription, record: ChargeRecord) -> None:
    sub.total_charges = (sub.total_charges or 0) + 1
    sub.total_amount = Decimal(sub.total_amount or 0) + record.amount

    if sub.first_charge_at is None or record.charged_at < sub.first_charge_at:
        sub.first_charge_at = record.charged_at

    if sub.last_charge_at is None or record.charged_at >= sub.last_charge_at:
        sub.last_charge_at = record.charged_at
        _derive_from_latest(sub, record.billing_cycle, record.amount, record.charged_at)
        if sub.lapse_flagged:
            # only statuses set by the lapse job are lifted; user decisions stay
            logger.info("subscription id=%s service=%s charged again, %s -> active",
                        sub.id, sub.service, sub.status)
            sub.status = SubscriptionStatus.ACTIVE.value
            sub.lapse_flagged = False

    if record.past_due:
        _mark_past_due(sub)


def _fold_into_subscription(db: Session, user_id: int, record: ChargeRecord) -> models.Subscription:
    sub = _find_subscription(db, user_id, record.service, record.currency)
    if sub is not None:
        _apply_charge(sub, record)
        return sub

    sub = _new_subscription(user_id, record)
    try:
        with db.begin_nested():
            db.add(sub)
            db.flush()
        logger.info(
            "new subscription user=%s service=%s cycle=%s monthly=%s next_renewal=%s",
            user_id, sub.service, sub.billing_cycle, sub.monthly_amount, sub.next_renewal,
        )
        return sub
    except IntegrityError:
        # another writer created the same (user, service, currency) first
        logger.info("subscription race user=%s service=%s currency=%s; folding into winner",
                    user_id, record.service, record.currency)

    sub = _find_subscription(db, user_id, record.service, record.currency)
    if sub is None:
        raise RuntimeError(
            f"subscription for user={user_id} service={record.service!r} vanished after unique conflict"
        )
    _apply_charge(sub, record)
    return sub


# =================================================
# RECONCILE
# =================================================
def reconcile(db: Session, user_id: int, record: ChargeRecord) -> models.Charge:
    """
    Fold one charge into the ledger. Re-ingesting a known source_message_id
    returns the stored charge and changes nothing.
    """
    existing = _find_charge(db, user_id, record.source_message_id)
    if existing is not None:
        logger.debug("charge already ingested user=%s source=%s", user_id, record.source_message_id)
        return existing

    charge = models.Charge(
        user_id=user_id,
        service=record.service,
        amount=record.amount,
        currency=record.currency,
        billing_cycle=record.billing_cycle.value,
        kind=record.kind.value,
        category=record.category,
        charged_at=record.charged_at,
        source_message_id=record.source_message_id,
    )
    try:
        with db.begin_nested():
            db.add(charge)
            db.flush()
    except IntegrityError:
        existing = _find_charge(db, user_id, record.source_message_id)
        if existing is None:
            raise
        logger.debug("charge inserted concurrently user=%s source=%s", user_id, record.source_message_id)
        return existing

    sub = _fold_into_subscription(db, user_id, record)
    charge.subscription_id = sub.id
    db.flush()

    logger.info(
        "reconciled charge id=%s user=%s service=%s amount=%s %s -> subscription id=%s total_charges=%s",
        charge.id, user_id, record.service, record.amount, record.currency, sub.id, sub.total_charges,
    )
    return charge


# =================================================
# SUBSCRIPTIONS CRUD
# =================================================
def list_subscriptions(db: Session, user_id: int, include_deleted: bool = False) -> List[models.Subscription]:
    stmt = select(models.Subscription).where(models.Subscription.user_id == user_id)
    if not include_deleted:
        stmt = stmt.where(models.Subscription.deleted_at.is_(None))
    stmt = stmt.order_by(models.Subscription.created_at.desc(), models.Subscription.id.desc())
    return list(db.execute(stmt).scalars().all())


def get_subscription(db: Session, user_id: int, subscription_id: int) -> models.Subscription:
    sub = db.get(models.Subscription, subscription_id)
    # other users' rows are indistinguishable from missing ones
    if sub is None or sub.user_id != user_id:
        raise NotFound("Subscription not found")
    return sub


def list_charges(db: Session, user_id: int, subscription_id: int) -> List[models.Charge]:
    get_subscription(db, user_id, subscription_id)
    return list(db.execute(
        select(models.Charge)
        .where(models.Charge.user_id == user_id, models.Charge.subscription_id == subscription_id)
        .order_by(models.Charge.charged_at.desc())
    ).scalars().all())


def create_manual_subscription(db: Session, user_id: int, payload: SubscriptionCreate) -> models.Subscription:
    """
    A hand-entered subscription is recorded as a charge like any other, so the
    aggregate invariants hold for it too.
    """
    record = ChargeRecord(
        service=payload.service,
        amount=payload.amount,
        currency=payload.currency,
        billing_cycle=payload.billing_cycle,
        kind=payload.kind,
        charged_at=payload.charged_at or _now(),
        source_message_id=payload.source_message_id or f"manual:{uuid.uuid4().hex}",
        category=payload.category,
        past_due=payload.past_due,
    )
    charge = reconcile(db, user_id, record)
    db.commit()
    return get_subscription(db, user_id, charge.subscription_id)


def _latest_charge(db: Session, sub: models.Subscription) -> Optional[models.Charge]:
    return db.execute(
        select(models.Charge)
        .where(models.Charge.subscription_id == sub.id)
        .order_by(models.Charge.charged_at.desc(), models.Charge.id.desc())
    ).scalars().first()


def update_subscription(db: Session, user_id: int, subscription_id: int, payload: SubscriptionUpdate) -> models.Subscription:
    sub = get_subscription(db, user_id, subscription_id)
    changes = payload.model_dump(exclude_unset=True)

    if "category" in changes and payload.category:
        sub.category = payload.category.strip()

    if "status" in changes and payload.status is not None:
        logger.info("subscription id=%s status %s -> %s (user action)", sub.id, sub.status, payload.status.value)
        sub.status = payload.status.value
        sub.lapse_flagged = False

    if "billing_cycle" in changes and payload.billing_cycle is not None:
        latest = _latest_charge(db, sub)
        amount = Decimal(latest.amount) if latest is not None else Decimal(sub.monthly_amount or 0)
        anchor = sub.last_charge_at or (latest.charged_at if latest is not None else _now())
        _derive_from_latest(sub, payload.billing_cycle, amount, anchor)

    if "next_renewal" in changes:
        sub.next_renewal = payload.next_renewal

    sub.updated_at = _now()
    db.commit()
    return sub


def soft_delete_subscription(db: Session, user_id: int, subscription_id: int) -> models.Subscription:
    sub = get_subscription(db, user_id, subscription_id)
    if sub.deleted_at is None:
        sub.deleted_at = _now()
        db.commit()
        logger.info("subscription id=%s soft-deleted by user=%s", sub.id, user_id)
    return sub


def restore_subscription(db: Session, user_id: int, subscription_id: int) -> models.Subscription:
    """Clears the soft-delete marker; status is left as it was."""
    sub = get_subscription(db, user_id, subscription_id)
    if sub.deleted_at is not None:
        sub.deleted_at = None
        db.commit()
        logger.info("subscription id=%s restored by user=%s", sub.id, user_id)
    return sub


# =================================================
# SUMMARY
# =================================================
_SPENDING_STATUSES = (
    SubscriptionStatus.ACTIVE.value,
    SubscriptionStatus.TRIAL.value,
    SubscriptionStatus.PAST_DUE.value,
)


def spend_summary(db: Session, user_id: int, now: Optional[datetime] = None) -> Dict:
    now = now or _now()
    horizon = now + timedelta(days=UPCOMING_RENEWAL_DAYS)

    active = [
        s for s in list_subscriptions(db, user_id)
        if s.status in _SPENDING_STATUSES
    ]

    monthly_total: Dict[str, Decimal] = {}
    for s in active:
        monthly_total[s.currency] = monthly_total.get(s.currency, Decimal(0)) + Decimal(s.monthly_amount or 0)

    upcoming = sorted(
        (s for s in active if s.next_renewal is not None and now <= s.next_renewal <= horizon),
        key=lambda s: s.next_renewal,
    )
    return {
        "active_count": len(active),
        "monthly_total": monthly_total,
        "upcoming_renewals": upcoming,
    }
