# -----------------------------------------------------------
# subtrack/payments.py
# Razorpay payment links + callback signature verification
# -----------------------------------------------------------

import hashlib
import hmac
import logging
from decimal import Decimal
from typing import Dict, Any

import razorpay

from subtrack.config import FRONTEND_URL, RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET

log = logging.getLogger("subtrack.payments")


# -----------------------------------------------------------
# Razorpay Client (Singleton)
# -----------------------------------------------------------
_client = None


def get_razorpay_client():
    global _client
    if _client is None:
        _client = razorpay.Client(auth=(RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET))
    return _client


# -----------------------------------------------------------
# Create hosted checkout (payment link)
# -----------------------------------------------------------
def create_payment_link(
    amount: Decimal,
    reference_id: str,
    description: str,
    customer_email: str,
    notes: Dict[str, Any],
    currency: str = "INR",
) -> Dict[str, Any]:
    """
    amount is in major units (e.g. 1499.00); Razorpay expects paise.
    """
    client = get_razorpay_client()
    link = client.payment_link.create({
        "amount": int(Decimal(amount) * 100),
        "currency": currency,
        "reference_id": reference_id,
        "description": description,
        "customer": {"email": customer_email},
        "notify": {"email": False, "sms": False},
        "callback_url": f"{FRONTEND_URL.rstrip('/')}/billing/return",
        "callback_method": "get",
        "notes": notes,
    })
    log.info("payment link created id=%s reference=%s", link.get("id"), reference_id)
    return {
        "id": link["id"],
        "url": link["short_url"],
        "reference_id": reference_id,
    }


# -----------------------------------------------------------
# Verify payment link callback signature
# -----------------------------------------------------------
def verify_payment_link_signature(payload: Dict[str, str]) -> bool:
    """
    payload must contain:
    - razorpay_payment_link_id
    - razorpay_payment_link_reference_id
    - razorpay_payment_link_status
    - razorpay_payment_id
    - razorpay_signature
    """
    if not RAZORPAY_KEY_SECRET:
        log.error("RAZORPAY_KEY_SECRET not configured; rejecting payment callback")
        return False

    fields = (
        payload.get("razorpay_payment_link_id"),
        payload.get("razorpay_payment_link_reference_id"),
        payload.get("razorpay_payment_link_status"),
        payload.get("razorpay_payment_id"),
    )
    signature = payload.get("razorpay_signature")
    if not all(fields) or not signature:
        return False

    generated_signature = hmac.new(
        RAZORPAY_KEY_SECRET.encode(),
        "|".join(fields).encode(),
        hashlib.sha256,
    ).hexdigest()

    return hmac.compare_digest(generated_signature, signature)
