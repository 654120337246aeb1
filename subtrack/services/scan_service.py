# subtrack/services/scan_service.py
"""
Feeds classifier output into the ledger.

Per record:
  ignored sender            -> dropped
  marketing / newsletter    -> dropped
  already seen source id    -> dropped (charge or suggestion exists)
  subscription kind with a
  monthly/yearly/weekly cycle
  and a usable amount       -> reconcile() directly
  anything else             -> pending suggestion for the user to review
"""

import logging
from datetime import datetime
from typing import Iterable

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from subtrack import models
from subtrack.enums import ChargeKind, RECURRING_CYCLES
from subtrack.schemas import ChargeRecord, ClassifiedMessage, ScanSummaryOut
from subtrack.services import ledger_service, suggestion_service

log = logging.getLogger("subtrack.scan_service")

_NOISE_KINDS = (ChargeKind.MARKETING, ChargeKind.NEWSLETTER)


def _as_charge_record(message: ClassifiedMessage):
    if message.kind != ChargeKind.SUBSCRIPTION or message.billing_cycle not in RECURRING_CYCLES:
        return None
    if not message.service or message.amount <= 0:
        return None
    try:
        return ChargeRecord(
            service=message.service,
            amount=message.amount,
            currency=message.currency,
            billing_cycle=message.billing_cycle,
            kind=message.kind,
            charged_at=message.charged_at,
            source_message_id=message.source_message_id,
            category=message.category,
            past_due=message.past_due,
        )
    except PydanticValidationError:
        return None


def ingest_records(db: Session, user: models.User, records: Iterable[ClassifiedMessage]) -> ScanSummaryOut:
    """
    Each record is committed on its own, so one bad record does not undo the
    rest of the scan.
    """
    summary = ScanSummaryOut()

    for message in records:
        summary.total += 1
        try:
            if suggestion_service.is_sender_ignored(db, user.id, message.sender_address):
                summary.skipped_ignored_sender += 1
                continue

            if message.kind in _NOISE_KINDS:
                summary.skipped_marketing += 1
                continue

            if ledger_service.charge_exists(db, user.id, message.source_message_id) or \
                    suggestion_service.suggestion_exists(db, user.id, message.source_message_id):
                summary.skipped_duplicate += 1
                continue

            record = _as_charge_record(message)
            if record is not None:
                ledger_service.reconcile(db, user.id, record)
                summary.reconciled += 1
            else:
                suggestion_service.create_suggestion(db, user.id, message)
                summary.suggested += 1

            db.commit()
        except IntegrityError as e:
            db.rollback()
            summary.rejected += 1
            log.warning("scan record rejected user=%s source=%s: %s", user.id, message.source_message_id, e.orig)

    user.last_scan_at = datetime.utcnow()
    db.commit()

    log.info(
        "scan finished user=%s total=%d reconciled=%d suggested=%d ignored=%d marketing=%d dup=%d rejected=%d",
        user.id, summary.total, summary.reconciled, summary.suggested, summary.skipped_ignored_sender,
        summary.skipped_marketing, summary.skipped_duplicate, summary.rejected,
    )
    return summary
