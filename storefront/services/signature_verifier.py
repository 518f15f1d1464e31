"""
Razorpay payment signature verification.

The gateway signs `order_id|payment_id` with the merchant's key secret
(HMAC-SHA256, hex). A confirmation is authentic only if the claimed
signature matches exactly; anything missing fails closed.
"""
import hashlib
import hmac
from typing import Optional


def compute_signature(gateway_order_id: str, gateway_payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 of "order_id|payment_id" keyed by the gateway secret."""
    body = f"{gateway_order_id}|{gateway_payment_id}"
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signature(
    gateway_order_id: Optional[str],
    gateway_payment_id: Optional[str],
    claimed_signature: Optional[str],
    secret: Optional[str],
) -> bool:
    """Return True only for a complete set of inputs whose signature matches."""
    parts = (gateway_order_id, gateway_payment_id, claimed_signature, secret)
    if not all(isinstance(p, str) and p for p in parts):
        return False

    expected = compute_signature(gateway_order_id, gateway_payment_id, secret)
    return hmac.compare_digest(expected.encode("utf-8"), claimed_signature.encode("utf-8"))
