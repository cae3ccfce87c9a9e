"""HMAC signatures for inbound event packs.

The producer signs ``"<unix timestamp>.<raw body>"`` with HMAC-SHA256 and sends
the hex digest with the timestamp. A pack is accepted only if the digest
matches and the timestamp is within the tolerance window.
"""

import hashlib
import hmac
import time
from typing import Optional, Union

from .exceptions import AuthError

SIGNATURE_HEADER = "X-Signature"
TIMESTAMP_HEADER = "X-Signature-Timestamp"


def compute_signature(secret: str, timestamp: Union[int, str], body: bytes) -> str:
    """Compute the hex HMAC-SHA256 signature of a timestamped body.

    Args:
        secret: Shared signing secret
        timestamp: Unix timestamp in seconds
        body: Raw body bytes exactly as transmitted

    Returns:
        Lowercase hex digest (64 characters)
    """
    message = str(timestamp).encode("ascii") + b"." + body
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(
    body: bytes,
    timestamp: Optional[str],
    signature: Optional[str],
    secret: str,
    tolerance_seconds: int = 300,
    now: Optional[float] = None,
) -> None:
    """Verify a pack signature and its freshness.

    Args:
        body: Raw body bytes
        timestamp: Value of the timestamp header
        signature: Value of the signature header
        secret: Shared signing secret
        tolerance_seconds: Maximum allowed clock skew in either direction
        now: Current unix time (defaults to time.time())

    Raises:
        AuthError: If either header is missing, the timestamp is stale or
            malformed, or the signature does not match
    """
    if not timestamp or not signature:
        raise AuthError("Missing pack signature headers")

    try:
        signed_at = int(timestamp.strip())
    except ValueError:
        raise AuthError(f"Malformed signature timestamp: {timestamp!r}")

    current = time.time() if now is None else now
    if abs(current - signed_at) > tolerance_seconds:
        raise AuthError(
            f"Pack signature timestamp outside {tolerance_seconds}s window"
        )

    expected = compute_signature(secret, signed_at, body)
    if not hmac.compare_digest(expected, signature.strip().lower()):
        raise AuthError("Pack signature mismatch")
