# -----------------------------------------------------------
# subtrack/services/billing_service.py
# Plan catalogue, checkout and plan changes
# -----------------------------------------------------------

import logging
import uuid
from decimal import Decimal
from typing import List, Dict, Any, Optional

from sqlalchemy.orm import Session

from subtrack import models
from subtrack import payments
from subtrack.config import PLAN_CURRENCY
from subtrack.enums import Plan, PAID_PLANS
from subtrack.errors import ValidationError

log = logging.getLogger("subtrack.billing_service")

# Static plans (can be DB-driven later)
_PLANS = [
    {"id": Plan.FREE, "name": "Free", "monthly": Decimal("0"), "yearly": Decimal("0")},
    {"id": Plan.PRO, "name": "Pro", "monthly": Decimal("299"), "yearly": Decimal("2999")},
    {"id": Plan.PREMIUM, "name": "Premium", "monthly": Decimal("599"), "yearly": Decimal("5999")},
]


class BillingService:
    def __init__(self, db: Session, user: Optional[models.User]):
        self.db = db
        self.user = user

    def list_plans(self) -> List[Dict[str, Any]]:
        current = Plan(self.user.plan) if self.user is not None else None
        return [
            {**p, "currency": PLAN_CURRENCY, "current": p["id"] == current}
            for p in _PLANS
        ]

    def _plan_price(self, plan: Plan) -> Decimal:
        for p in _PLANS:
            if p["id"] == plan:
                return p["monthly"]
        raise ValidationError(f"Unknown plan {plan}")

    def create_checkout(self, plan: Plan) -> Dict[str, Any]:
        if plan not in PAID_PLANS:
            raise ValidationError("Checkout is only available for paid plans")

        reference_id = f"plan_{self.user.id}_{plan.value}_{uuid.uuid4().hex[:12]}"
        link = payments.create_payment_link(
            amount=self._plan_price(plan),
            reference_id=reference_id,
            description=f"{plan.value.title()} plan",
            customer_email=self.user.email,
            notes={"user_id": str(self.user.id), "plan": plan.value},
            currency=PLAN_CURRENCY,
        )
        return {"gateway": "razorpay", "url": link["url"]}

    def confirm_payment(self, payload: Dict[str, str]) -> models.User:
        """
        Trust the gateway's verdict: a correctly signed, paid callback whose
        reference belongs to this user moves them to the purchased plan.
        """
        if not payments.verify_payment_link_signature(payload):
            log.warning("payment signature mismatch user=%s", self.user.id)
            raise ValidationError("Payment verification failed")

        if payload.get("razorpay_payment_link_status") != "paid":
            raise ValidationError("Payment not completed")

        # reference is part of the signed payload: plan_<user id>_<plan>_<nonce>
        parts = payload.get("razorpay_payment_link_reference_id", "").split("_")
        if len(parts) != 4 or parts[0] != "plan" or parts[1] != str(self.user.id):
            raise ValidationError("Payment reference does not belong to this account")
        try:
            plan = Plan(parts[2])
        except ValueError:
            raise ValidationError("Payment reference names an unknown plan")
        if plan not in PAID_PLANS:
            raise ValidationError("Payment reference names an unknown plan")

        return self.set_plan(plan)

    def set_plan(self, plan: Plan) -> models.User:
        previous = self.user.plan
        self.user.plan = plan.value
        self.db.commit()
        log.info("plan changed user=%s %s -> %s", self.user.id, previous, plan.value)
        return self.user

    def cancel(self) -> models.User:
        return self.set_plan(Plan.FREE)

    def status(self) -> Dict[str, Any]:
        plan = Plan(self.user.plan)
        return {"plan": plan, "is_paid": plan in PAID_PLANS}
