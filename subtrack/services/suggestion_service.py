# -----------------------------------------------------------
# subtrack/services/suggestion_service.py
# Review queue: pending -> accepted | ignored
# -----------------------------------------------------------

import logging
import os
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from subtrack import models
from subtrack.enums import BillingCycle, ChargeKind, SuggestionStatus
from subtrack.errors import InvalidState, NotFound, ValidationError
from subtrack.schemas import ChargeRecord, ClassifiedMessage, SuggestionAccept
from subtrack.services.ledger_service import reconcile

logger = logging.getLogger("subtrack.suggestion_service")
logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())


def _now() -> datetime:
    return datetime.utcnow()


# -------------------------------------------------
# IGNORED SENDERS
# -------------------------------------------------
def is_sender_ignored(db: Session, user_id: int, sender: str) -> bool:
    return db.execute(
        select(models.IgnoredSender.id).where(
            models.IgnoredSender.user_id == user_id,
            models.IgnoredSender.sender == sender.strip().lower(),
        )
    ).first() is not None


def ignore_sender(db: Session, user_id: int, sender: str) -> None:
    sender = sender.strip().lower()
    if not sender or is_sender_ignored(db, user_id, sender):
        return
    try:
        with db.begin_nested():
            db.add(models.IgnoredSender(user_id=user_id, sender=sender))
            db.flush()
        logger.info("sender ignored user=%s sender=%s", user_id, sender)
    except IntegrityError:
        # already on the list
        pass


def list_ignored_senders(db: Session, user_id: int) -> List[str]:
    return list(db.execute(
        select(models.IgnoredSender.sender)
        .where(models.IgnoredSender.user_id == user_id)
        .order_by(models.IgnoredSender.created_at)
    ).scalars().all())


# -------------------------------------------------
# LOOKUPS
# -------------------------------------------------
def _find_by_source(db: Session, user_id: int, source_message_id: str) -> Optional[models.PendingSubscriptionSuggestion]:
    return db.execute(
        select(models.PendingSubscriptionSuggestion).where(
            models.PendingSubscriptionSuggestion.user_id == user_id,
            models.PendingSubscriptionSuggestion.source_message_id == source_message_id,
        )
    ).scalars().first()


def suggestion_exists(db: Session, user_id: int, source_message_id: str) -> bool:
    return _find_by_source(db, user_id, source_message_id) is not None


def get_suggestion(db: Session, user_id: int, suggestion_id: int) -> models.PendingSubscriptionSuggestion:
    suggestion = db.get(models.PendingSubscriptionSuggestion, suggestion_id)
    if suggestion is None or suggestion.user_id != user_id:
        raise NotFound("Suggestion not found")
    return suggestion


def list_suggestions(
    db: Session,
    user_id: int,
    status: Optional[SuggestionStatus] = SuggestionStatus.PENDING,
) -> List[models.PendingSubscriptionSuggestion]:
    stmt = select(models.PendingSubscriptionSuggestion).where(
        models.PendingSubscriptionSuggestion.user_id == user_id
    )
    if status is not None:
        stmt = stmt.where(models.PendingSubscriptionSuggestion.status == status.value)
    stmt = stmt.order_by(
        models.PendingSubscriptionSuggestion.created_at.desc(),
        models.PendingSubscriptionSuggestion.id.desc(),
    )
    return list(db.execute(stmt).scalars().all())


def suggestion_summary(db: Session, user_id: int) -> Dict[str, int]:
    rows = db.execute(
        select(models.PendingSubscriptionSuggestion.status, func.count())
        .where(models.PendingSubscriptionSuggestion.user_id == user_id)
        .group_by(models.PendingSubscriptionSuggestion.status)
    ).all()
    summary = {s.value: 0 for s in SuggestionStatus}
    for status, count in rows:
        summary[status] = count
    return summary


# =================================================
# CREATE
# =================================================
def create_suggestion(
    db: Session,
    user_id: int,
    message: ClassifiedMessage,
) -> Optional[models.PendingSubscriptionSuggestion]:
    """
    Queue a classifier record for review. Returns None when the sender is on
    the user's ignore list. Does not commit.
    """
    if is_sender_ignored(db, user_id, message.sender_address):
        logger.debug("suggestion dropped, sender ignored user=%s sender=%s", user_id, message.sender_address)
        return None

    existing = _find_by_source(db, user_id, message.source_message_id)
    if existing is not None:
        return existing

    suggestion = models.PendingSubscriptionSuggestion(
        user_id=user_id,
        source_message_id=message.source_message_id,
        sender=message.sender_address,
        subject=message.subject,
        service=message.service,
        amount=message.amount,
        currency=message.currency,
        category=message.category,
        billing_cycle=message.billing_cycle.value,
        kind=message.kind.value,
        charged_at=message.charged_at,
        status=SuggestionStatus.PENDING.value,
    )
    try:
        with db.begin_nested():
            db.add(suggestion)
            db.flush()
    except IntegrityError:
        existing = _find_by_source(db, user_id, message.source_message_id)
        if existing is None:
            raise
        return existing

    logger.info(
        "suggestion queued id=%s user=%s sender=%s service=%s",
        suggestion.id, user_id, suggestion.sender, suggestion.service,
    )
    return suggestion


# =================================================
# DECISIONS
# =================================================
def _require_pending(suggestion: models.PendingSubscriptionSuggestion) -> None:
    if suggestion.status != SuggestionStatus.PENDING.value:
        raise InvalidState(f"Suggestion already {suggestion.status}")


def _to_charge_record(
    suggestion: models.PendingSubscriptionSuggestion,
    edits: Optional[SuggestionAccept] = None,
) -> ChargeRecord:
    fields = {
        "service": suggestion.service,
        "amount": suggestion.amount,
        "currency": suggestion.currency,
        "billing_cycle": BillingCycle(suggestion.billing_cycle),
        "category": suggestion.category or "Other",
    }
    if edits is not None:
        fields.update(edits.model_dump(
            include={"service", "amount", "currency", "billing_cycle", "category"},
            exclude_none=True,
        ))

    if not (fields["service"] or "").strip():
        raise ValidationError("Service is required to create subscription")
    if fields["amount"] is None or Decimal(fields["amount"]) <= 0:
        raise ValidationError("Amount must be greater than zero")
    try:
        return ChargeRecord(
            service=fields["service"],
            amount=Decimal(fields["amount"]),
            currency=fields["currency"],
            billing_cycle=fields["billing_cycle"],
            kind=ChargeKind(suggestion.kind),
            charged_at=suggestion.charged_at,
            source_message_id=suggestion.source_message_id,
            category=fields["category"],
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Suggestion cannot become a charge: {e.errors()[0]['msg']}")


def accept_suggestion(
    db: Session,
    user_id: int,
    suggestion_id: int,
    edits: Optional[SuggestionAccept] = None,
) -> Tuple[models.PendingSubscriptionSuggestion, models.Charge]:
    """
    Promote a pending suggestion to a charge (and its subscription) through
    reconcile(). User edits override the classifier's fields and are kept on
    the suggestion. Decisions are final: a suggestion that is no longer
    pending raises InvalidState and nothing is written.
    """
    suggestion = get_suggestion(db, user_id, suggestion_id)
    _require_pending(suggestion)
    record = _to_charge_record(suggestion, edits)

    try:
        charge = reconcile(db, user_id, record)

        suggestion.service = record.service
        suggestion.amount = record.amount
        suggestion.currency = record.currency
        suggestion.billing_cycle = record.billing_cycle.value
        suggestion.category = record.category
        suggestion.status = SuggestionStatus.ACCEPTED.value
        suggestion.decided_at = _now()

        if edits is not None and edits.status is not None:
            sub = charge.subscription
            sub.status = edits.status.value
            sub.lapse_flagged = False
        if edits is not None and edits.always_ignore_sender and suggestion.sender:
            ignore_sender(db, user_id, suggestion.sender)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("accept failed suggestion=%s user=%s", suggestion_id, user_id)
        raise

    logger.info("suggestion accepted id=%s user=%s charge=%s", suggestion.id, user_id, charge.id)
    return suggestion, charge


def ignore_suggestion(db: Session, user_id: int, suggestion_id: int) -> models.PendingSubscriptionSuggestion:
    """
    Mark ignored and put the sender on the user's ignore list, so later
    messages from the same address never become suggestions.
    """
    suggestion = get_suggestion(db, user_id, suggestion_id)
    _require_pending(suggestion)

    try:
        suggestion.status = SuggestionStatus.IGNORED.value
        suggestion.decided_at = _now()
        if suggestion.sender:
            ignore_sender(db, user_id, suggestion.sender)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("ignore failed suggestion=%s user=%s", suggestion_id, user_id)
        raise

    logger.info("suggestion ignored id=%s user=%s", suggestion.id, user_id)
    return suggestion
