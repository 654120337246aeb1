# subtrack/api/scan_routes.py
"""
Entry points for classifier output. Mail-derived records are open to every
plan; card-feed records need a paid plan.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from subtrack import models
from subtrack.db import get_db
from subtrack.deps import get_current_user_row, require_paid_plan
from subtrack.schemas import ScanRequest, ScanSummaryOut
from subtrack.services import scan_service, suggestion_service

router = APIRouter(prefix="/scan", tags=["scan"])


@router.post("/email", response_model=ScanSummaryOut)
def ingest_email(
    payload: ScanRequest,
    user: models.User = Depends(get_current_user_row),
    db: Session = Depends(get_db),
):
    return scan_service.ingest_records(db, user, payload.records)


@router.post("/card", response_model=ScanSummaryOut, dependencies=[Depends(require_paid_plan)])
def ingest_card(
    payload: ScanRequest,
    user: models.User = Depends(get_current_user_row),
    db: Session = Depends(get_db),
):
    return scan_service.ingest_records(db, user, payload.records)


@router.get("/ignored-senders", response_model=List[str])
def ignored_senders(
    user: models.User = Depends(get_current_user_row),
    db: Session = Depends(get_db),
):
    return suggestion_service.list_ignored_senders(db, user.id)
