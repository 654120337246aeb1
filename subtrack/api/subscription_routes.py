# -----------------------------------------------------------
# subtrack/api/subscription_routes.py
# -----------------------------------------------------------

import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from subtrack.db import get_db
from subtrack.deps import get_current_user
from subtrack.schemas import (
    ChargeOut,
    SpendSummaryOut,
    SubscriptionCreate,
    SubscriptionOut,
    SubscriptionUpdate,
)
from subtrack.services import ledger_service
from subtrack.session_guard import Identity

logger = logging.getLogger("subtrack.subscription_routes")

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("", response_model=List[SubscriptionOut])
def list_subscriptions(
    include_deleted: bool = False,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ledger_service.list_subscriptions(db, user.id, include_deleted=include_deleted)


@router.post("", response_model=SubscriptionOut, status_code=status.HTTP_201_CREATED)
def create_subscription(
    payload: SubscriptionCreate,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ledger_service.create_manual_subscription(db, user.id, payload)


@router.get("/summary", response_model=SpendSummaryOut)
def spend_summary(user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return ledger_service.spend_summary(db, user.id)


@router.get("/{subscription_id}", response_model=SubscriptionOut)
def get_subscription(
    subscription_id: int,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ledger_service.get_subscription(db, user.id, subscription_id)


@router.get("/{subscription_id}/charges", response_model=List[ChargeOut])
def list_charges(
    subscription_id: int,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ledger_service.list_charges(db, user.id, subscription_id)


@router.patch("/{subscription_id}", response_model=SubscriptionOut)
def update_subscription(
    subscription_id: int,
    payload: SubscriptionUpdate,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ledger_service.update_subscription(db, user.id, subscription_id, payload)


@router.delete("/{subscription_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_subscription(
    subscription_id: int,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ledger_service.soft_delete_subscription(db, user.id, subscription_id)


@router.post("/{subscription_id}/restore", response_model=SubscriptionOut)
def restore_subscription(
    subscription_id: int,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ledger_service.restore_subscription(db, user.id, subscription_id)
