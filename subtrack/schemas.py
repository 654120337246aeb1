# subtrack/schemas.py

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from subtrack.enums import BillingCycle, ChargeKind, Plan, SubscriptionStatus, SuggestionStatus
from subtrack.services.billing_dates import normalize_billing_cycle


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =====================================================
# AUTH / USER
# =====================================================

class RegisterPayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)


class LoginPayload(BaseModel):
    email: EmailStr
    password: str


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: EmailStr
    plan: Plan
    last_scan_at: Optional[datetime]
    created_at: datetime


# =====================================================
# LEDGER INPUT
# =====================================================

class ChargeRecord(_CamelModel):
    """
    A charge ready for the ledger. Amount must be positive and the service
    named; the billing cycle defaults to `unknown` when absent.
    """
    service: str = Field(min_length=1, max_length=255)
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    billing_cycle: BillingCycle = BillingCycle.UNKNOWN
    kind: ChargeKind = ChargeKind.OTHER
    charged_at: datetime
    source_message_id: str = Field(min_length=1, max_length=255)
    category: str = Field(default="Other", max_length=64)
    # set by the classifier when the message reports a failed/overdue payment
    past_due: bool = False

    @field_validator("service", "category")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("billing_cycle", mode="before")
    @classmethod
    def _cycle(cls, v):
        return normalize_billing_cycle(v)

    @field_validator("charged_at")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(v) if v else v


class ClassifiedMessage(_CamelModel):
    """
    One record from the upstream mail/card classifier. Looser than
    ChargeRecord: ambiguous messages may lack a service or an amount and
    end up as suggestions for the user to review.
    """
    sender_address: str = Field(min_length=1, max_length=320)
    subject: str = Field(default="", max_length=512)
    service: Optional[str] = Field(default=None, max_length=255)
    amount: Decimal = Field(default=Decimal(0), ge=0, max_digits=12, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    billing_cycle: BillingCycle = BillingCycle.UNKNOWN
    kind: ChargeKind = ChargeKind.OTHER
    charged_at: datetime
    source_message_id: str = Field(min_length=1, max_length=255)
    category: str = Field(default="Other", max_length=64)
    past_due: bool = False

    @field_validator("sender_address")
    @classmethod
    def _sender(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("service")
    @classmethod
    def _service(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("billing_cycle", mode="before")
    @classmethod
    def _cycle(cls, v):
        return normalize_billing_cycle(v)

    @field_validator("charged_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return _naive_utc(v)


class ScanRequest(BaseModel):
    records: List[ClassifiedMessage] = Field(default_factory=list, max_length=500)


class ScanSummaryOut(BaseModel):
    total: int = 0
    reconciled: int = 0
    suggested: int = 0
    skipped_ignored_sender: int = 0
    skipped_marketing: int = 0
    skipped_duplicate: int = 0
    rejected: int = 0


# =====================================================
# SUBSCRIPTIONS
# =====================================================

class SubscriptionCreate(ChargeRecord):
    """Manual entry: same fields as a charge, the source id is generated."""
    source_message_id: Optional[str] = Field(default=None, max_length=255)
    charged_at: Optional[datetime] = None


class SubscriptionUpdate(_CamelModel):
    category: Optional[str] = Field(default=None, min_length=1, max_length=64)
    status: Optional[SubscriptionStatus] = None
    billing_cycle: Optional[BillingCycle] = None
    next_renewal: Optional[datetime] = None

    @field_validator("billing_cycle", mode="before")
    @classmethod
    def _cycle(cls, v):
        if v is None:
            return None
        return normalize_billing_cycle(v)

    @field_validator("next_renewal")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(v) if v else v


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    service: str
    currency: str
    category: str
    billing_cycle: BillingCycle
    status: SubscriptionStatus
    lapse_flagged: bool
    monthly_amount: Decimal
    estimated_monthly_spend: Decimal
    first_charge_at: Optional[datetime]
    last_charge_at: Optional[datetime]
    next_renewal: Optional[datetime]
    total_charges: int
    total_amount: Decimal
    deleted_at: Optional[datetime]
    created_at: datetime


class ChargeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    subscription_id: Optional[int]
    service: str
    amount: Decimal
    currency: str
    billing_cycle: BillingCycle
    kind: ChargeKind
    category: str
    charged_at: datetime
    source_message_id: str


class SpendSummaryOut(BaseModel):
    active_count: int
    monthly_total: Dict[str, Decimal]
    upcoming_renewals: List[SubscriptionOut]


# =====================================================
# SUGGESTIONS
# =====================================================

class SuggestionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source_message_id: str
    sender: str
    subject: str
    service: Optional[str]
    amount: Decimal
    currency: str
    category: str
    billing_cycle: BillingCycle
    kind: ChargeKind
    charged_at: datetime
    status: SuggestionStatus
    decided_at: Optional[datetime]
    created_at: datetime


class SuggestionSummaryOut(BaseModel):
    pending: int = 0
    accepted: int = 0
    ignored: int = 0


class SuggestionAccept(_CamelModel):
    """
    Corrections the user makes while accepting. Every field is optional and
    overrides what the classifier stored on the suggestion.
    """
    service: Optional[str] = Field(default=None, min_length=1, max_length=255)
    amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    billing_cycle: Optional[BillingCycle] = None
    category: Optional[str] = Field(default=None, min_length=1, max_length=64)
    status: Optional[SubscriptionStatus] = None
    always_ignore_sender: bool = False

    @field_validator("service", "category")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v

    @field_validator("billing_cycle", mode="before")
    @classmethod
    def _cycle(cls, v):
        if v is None:
            return None
        return normalize_billing_cycle(v)


class AcceptSuggestionOut(BaseModel):
    suggestion: SuggestionOut
    charge: ChargeOut
    subscription: Optional[SubscriptionOut]


# =====================================================
# BILLING
# =====================================================

class PlanOut(BaseModel):
    id: Plan
    name: str
    monthly: Decimal
    yearly: Decimal
    currency: str
    current: bool = False


class CheckoutIn(BaseModel):
    plan: Plan

    @field_validator("plan")
    @classmethod
    def _paid_only(cls, v: Plan) -> Plan:
        if v == Plan.FREE:
            raise ValueError("checkout is only available for paid plans")
        return v


class CheckoutOut(BaseModel):
    url: str
    gateway: str = "razorpay"


class PaymentConfirmIn(BaseModel):
    razorpay_payment_id: str
    razorpay_payment_link_id: str
    razorpay_payment_link_reference_id: str
    razorpay_payment_link_status: str
    razorpay_signature: str


class BillingStatusOut(BaseModel):
    plan: Plan
    is_paid: bool


class MessageOut(BaseModel):
    ok: bool = True
    detail: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None
