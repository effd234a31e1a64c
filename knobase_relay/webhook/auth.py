"""Webhook signature verification."""

from __future__ import annotations

import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)


def compute_signature(body: bytes, secret: str) -> str:
    """Return the lowercase hex HMAC-SHA256 of *body* keyed with *secret*."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str | None, secret: str | None) -> bool:
    """Check that *body* was signed by the holder of *secret*.

    *body* must be the raw bytes received on the wire; a re-serialized JSON
    document may differ in key order or whitespace and fail legitimately
    signed requests.

    When either *secret* or *signature* is missing the check is skipped and
    ``True`` is returned. Unconfigured deployments keep working, but any
    sender that omits the header is accepted even when a secret is set.

    Uses constant-time comparison. Never raises.
    """
    if not secret or not signature:
        logger.debug("Signature check skipped (secret=%s, header=%s)", bool(secret), bool(signature))
        return True

    expected = compute_signature(body, secret)
    try:
        valid = hmac.compare_digest(signature.encode("ascii"), expected.encode("ascii"))
    except UnicodeEncodeError:
        valid = False
    if not valid:
        logger.warning("Signature mismatch (header length=%d)", len(signature))
    return valid
