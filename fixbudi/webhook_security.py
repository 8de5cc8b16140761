"""
Webhook Security Module

Signature verification for courier and payment webhooks. Every check runs
against the raw request body before any JSON parsing:
- Constant-time signature comparison
- Timestamp tolerance on signed payment events
- Logging of every rejection for auditing
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from .errors import WebhookSignatureError

logger = logging.getLogger(__name__)

# Maximum age of a signed webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300

PAYSTACK_SIGNATURE_HEADER = "x-paystack-signature"
STRIPE_SIGNATURE_HEADER = "stripe-signature"


def constant_time_compare(a: Optional[str], b: Optional[str]) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def compute_hmac_sha512(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA512 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha512).hexdigest()


def verify_timestamp(
    timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS, now: Optional[float] = None
) -> bool:
    """
    Verify webhook timestamp is within acceptable range.
    Prevents replay attacks by rejecting old webhooks.
    """
    if not timestamp:
        return False

    try:
        webhook_time = int(timestamp)
        current_time = int(now if now is not None else time.time())
        age = abs(current_time - webhook_time)

        if age > max_age:
            logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
            return False

        return True
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False


def verify_hex_signature(provider: str, secret: Optional[str], raw_body: bytes, signature: Optional[str]) -> None:
    """HMAC-SHA256 hex digest over the raw body, used by courier webhooks"""
    if not secret:
        logger.error(f"❌ {provider} webhook secret not configured")
        raise WebhookSignatureError(f"{provider} webhook secret not configured")
    if not signature:
        logger.error(f"❌ Missing {provider} webhook signature")
        raise WebhookSignatureError("Missing webhook signature")

    expected = compute_hmac_sha256(secret, raw_body)
    if not constant_time_compare(expected, signature.strip().lower()):
        logger.error(f"❌ Invalid {provider} webhook signature")
        raise WebhookSignatureError()


def verify_paystack_signature(secret: Optional[str], raw_body: bytes, signature: Optional[str]) -> None:
    """Paystack signs the raw body with HMAC-SHA512 using the account secret key"""
    if not secret:
        logger.error("❌ PAYSTACK_SECRET_KEY not configured")
        raise WebhookSignatureError("Paystack webhook secret not configured")
    if not signature:
        logger.error("❌ Missing x-paystack-signature header")
        raise WebhookSignatureError("Missing webhook signature")

    expected = compute_hmac_sha512(secret, raw_body)
    if not constant_time_compare(expected, signature.strip().lower()):
        logger.error("❌ Invalid Paystack webhook signature")
        raise WebhookSignatureError()


def parse_stripe_signature_header(header: str) -> tuple[Optional[str], list[str]]:
    """Split `t=<ts>,v1=<sig>[,v1=<sig>]` into the timestamp and candidate signatures"""
    timestamp = None
    signatures = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def verify_stripe_signature(
    secret: Optional[str],
    raw_body: bytes,
    header: Optional[str],
    tolerance: int = MAX_WEBHOOK_AGE_SECONDS,
    now: Optional[float] = None,
) -> None:
    """Stripe-style signature: HMAC-SHA256 over `{timestamp}.{body}` with a replay window"""
    if not secret:
        logger.error("❌ STRIPE_WEBHOOK_SECRET not configured")
        raise WebhookSignatureError("Stripe webhook secret not configured")
    if not header:
        logger.error("❌ Missing stripe-signature header")
        raise WebhookSignatureError("Missing webhook signature")

    timestamp, signatures = parse_stripe_signature_header(header)
    if not timestamp or not signatures:
        logger.error(f"❌ Malformed stripe-signature header: {header[:80]}")
        raise WebhookSignatureError("Malformed webhook signature header")

    if not verify_timestamp(timestamp, max_age=tolerance, now=now):
        raise WebhookSignatureError("Webhook timestamp outside tolerance")

    signed_payload = timestamp.encode("utf-8") + b"." + raw_body
    expected = compute_hmac_sha256(secret, signed_payload)
    if not any(constant_time_compare(expected, candidate) for candidate in signatures):
        logger.error("❌ Invalid Stripe webhook signature")
        raise WebhookSignatureError()
