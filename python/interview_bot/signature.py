"""
Webhook signature verification and the endpoint validation handshake.

The platform signs ``"v0:" + timestamp + ":" + body`` with HMAC-SHA256 and
sends ``"v0=" + hexdigest``. The digest must be computed over the bytes
exactly as received; re-serializing a parsed body does not reproduce them.
"""

from __future__ import annotations

import hashlib
import hmac
import logging

from .errors import VerificationFailed
from .models import ChallengeResponse


__all__ = ["SIGNATURE_VERSION", "compute_signature", "verify_signature", "respond_to_challenge"]


logger = logging.getLogger(__name__)

SIGNATURE_VERSION = "v0"


def compute_signature(raw_body: bytes, timestamp: str, secret: str) -> str:
    """
    Compute the expected signature header value.

    Args:
        raw_body: Request body bytes as received.
        timestamp: Value of the signature timestamp header.
        secret: Shared webhook secret.

    Returns:
        ``"v0=<hex digest>"``.
    """
    message = f"{SIGNATURE_VERSION}:{timestamp}:".encode("utf-8") + raw_body
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_signature(
    raw_body: bytes,
    timestamp: str | None,
    signature: str | None,
    secret: str | None,
) -> bool:
    """
    Check a webhook signature in constant time.

    Never raises. Returns False when any of timestamp, signature or secret is
    missing or empty: an unconfigured secret never means "skip verification".
    """
    if not timestamp or not signature or not secret:
        logger.warning(
            "Signature check failed closed: timestamp=%s signature=%s secret=%s",
            "present" if timestamp else "missing",
            "present" if signature else "missing",
            "configured" if secret else "missing",
        )
        return False

    try:
        expected = compute_signature(raw_body, timestamp, secret)
        return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
    except (UnicodeError, TypeError) as exc:
        logger.warning("Signature check failed on undecodable header: %s", exc)
        return False


def respond_to_challenge(plain_token: str, secret: str | None) -> ChallengeResponse:
    """
    Answer the endpoint URL validation handshake.

    Deterministic: the same token and secret always produce the same
    ``encryptedToken``.

    Raises:
        VerificationFailed: If no secret is configured.
    """
    if not secret:
        raise VerificationFailed("Webhook secret is not configured.")
    encrypted = hmac.new(
        secret.encode("utf-8"),
        plain_token.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return ChallengeResponse(plainToken=plain_token, encryptedToken=encrypted)
