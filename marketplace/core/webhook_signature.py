"""
Verification of identity-provider webhooks signed with the svix scheme.

The signed content is "<svix-id>.<svix-timestamp>.<raw body>", HMAC-SHA256
keyed with the base64 part of the "whsec_..." secret. The svix-signature
header may carry several space-separated "v1,<base64>" signatures.
"""
import base64
import hashlib
import hmac
import time
from typing import Mapping, Optional

TOLERANCE_SECONDS = 5 * 60


class WebhookSignatureError(ValueError):
    pass


def _secret_bytes(secret: str) -> bytes:
    if secret.startswith("whsec_"):
        secret = secret[len("whsec_"):]
    return base64.b64decode(secret)


def compute_signature(secret: str, msg_id: str, timestamp: str, payload: bytes) -> str:
    signed = f"{msg_id}.{timestamp}.".encode() + payload
    digest = hmac.new(_secret_bytes(secret), signed, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_webhook(
    payload: bytes,
    headers: Mapping[str, str],
    secret: str,
    tolerance_seconds: int = TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> None:
    """
    Raises:
        WebhookSignatureError: Missing headers, stale timestamp or no matching signature
    """
    if not secret:
        raise WebhookSignatureError("Webhook secret not configured")

    msg_id = headers.get("svix-id")
    timestamp = headers.get("svix-timestamp")
    signature_header = headers.get("svix-signature")
    if not msg_id or not timestamp or not signature_header:
        raise WebhookSignatureError("Missing signature headers")

    try:
        sent_at = int(timestamp)
    except ValueError:
        raise WebhookSignatureError("Invalid timestamp")

    now = time.time() if now is None else now
    if abs(now - sent_at) > tolerance_seconds:
        raise WebhookSignatureError("Timestamp outside tolerance")

    expected = compute_signature(secret, msg_id, timestamp, payload)
    for candidate in signature_header.split():
        version, _, value = candidate.partition(",")
        if version == "v1" and hmac.compare_digest(value, expected):
            return

    raise WebhookSignatureError("Invalid signature")
