"""
Gateway signature verification.

Two payload shapes are signed by the gateway with HMAC-SHA256 (hex digest):
- order confirmation: "{order_id}|{payment_id}", no escaping
- webhook delivery:   the raw request body, before any JSON parsing
"""
import hashlib
import hmac
from typing import Optional


def order_confirmation_payload(order_id: str, payment_id: str) -> bytes:
    return f"{order_id}|{payment_id}".encode("utf-8")


def sign(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify(payload: bytes, provided_signature: Optional[str], secret: str) -> bool:
    """Constant-time check of provided_signature against HMAC-SHA256(secret, payload)."""
    if not provided_signature or not secret:
        return False
    expected = sign(payload, secret)
    return hmac.compare_digest(expected.encode("ascii"), provided_signature.encode("utf-8"))
