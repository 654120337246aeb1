# subtrack/api/billing_routes.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from subtrack import models
from subtrack.db import get_db
from subtrack.deps import get_current_user_row, get_optional_user, set_auth_cookies
from subtrack.schemas import BillingStatusOut, CheckoutIn, CheckoutOut, PaymentConfirmIn, PlanOut
from subtrack.security import claims_for_user, issue_token_pair
from subtrack.services.billing_service import BillingService
from subtrack.session_guard import Identity

router = APIRouter(prefix="/billing", tags=["billing"])


def _reissue_session(response: Response, user: models.User) -> None:
    # tokens embed the plan; hand out a pair that matches the new one
    set_auth_cookies(response, issue_token_pair(claims_for_user(user)))


@router.get("/plans", response_model=List[PlanOut])
def get_plans(identity: Optional[Identity] = Depends(get_optional_user), db: Session = Depends(get_db)):
    user = db.get(models.User, identity.id) if identity else None
    return BillingService(db, user).list_plans()


@router.post("/checkout", response_model=CheckoutOut)
def checkout(payload: CheckoutIn, user: models.User = Depends(get_current_user_row), db: Session = Depends(get_db)):
    return BillingService(db, user).create_checkout(payload.plan)


@router.post("/confirm", response_model=BillingStatusOut)
def confirm(
    payload: PaymentConfirmIn,
    response: Response,
    user: models.User = Depends(get_current_user_row),
    db: Session = Depends(get_db),
):
    svc = BillingService(db, user)
    svc.confirm_payment(payload.model_dump())
    _reissue_session(response, user)
    return svc.status()


@router.get("/status", response_model=BillingStatusOut)
def billing_status(user: models.User = Depends(get_current_user_row), db: Session = Depends(get_db)):
    return BillingService(db, user).status()


@router.post("/cancel", response_model=BillingStatusOut)
def cancel(response: Response, user: models.User = Depends(get_current_user_row), db: Session = Depends(get_db)):
    svc = BillingService(db, user)
    svc.cancel()
    _reissue_session(response, user)
    return svc.status()
