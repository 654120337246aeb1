# subtrack/api/suggestion_routes.py
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from subtrack.db import get_db
from subtrack.deps import get_current_user
from subtrack.enums import SuggestionStatus
from subtrack.schemas import AcceptSuggestionOut, SuggestionAccept, SuggestionOut, SuggestionSummaryOut
from subtrack.services import suggestion_service
from subtrack.session_guard import Identity

router = APIRouter(prefix="/suggestions", tags=["suggestions"])


@router.get("", response_model=List[SuggestionOut])
def list_suggestions(
    status: Optional[SuggestionStatus] = SuggestionStatus.PENDING,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return suggestion_service.list_suggestions(db, user.id, status=status)


@router.get("/summary", response_model=SuggestionSummaryOut)
def suggestion_summary(user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return suggestion_service.suggestion_summary(db, user.id)


@router.post("/{suggestion_id}/accept", response_model=AcceptSuggestionOut)
def accept_suggestion(
    suggestion_id: int,
    payload: Optional[SuggestionAccept] = None,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    suggestion, charge = suggestion_service.accept_suggestion(db, user.id, suggestion_id, payload)
    return {
        "suggestion": suggestion,
        "charge": charge,
        "subscription": charge.subscription,
    }


@router.post("/{suggestion_id}/ignore", response_model=SuggestionOut)
def ignore_suggestion(
    suggestion_id: int,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return suggestion_service.ignore_suggestion(db, user.id, suggestion_id)
