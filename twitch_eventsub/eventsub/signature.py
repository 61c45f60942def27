"""HMAC signing of webhook callbacks.

Twitch signs every callback with HMAC-SHA256 over the concatenation of the
message id header, the timestamp header and the raw request body, keyed with
the secret given at subscription time. The signature header carries the
hex digest prefixed with ``sha256=``.
"""

from __future__ import annotations

import hashlib
import hmac
from datetime import UTC, datetime

from ..api.data import parse_timestamp
from ..constants import HMAC_PREFIX


def compute_signature(secret: str, message_id: str, timestamp: str, body: bytes) -> str:
    """Return the expected ``sha256=<hex>`` signature header value."""
    message = message_id.encode("utf-8") + timestamp.encode("utf-8") + body
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return f"{HMAC_PREFIX}{digest}"


def verify_signature(
    secret: str,
    message_id: str,
    timestamp: str,
    body: bytes,
    signature: str | None,
) -> bool:
    """Constant-time check of a received signature header."""
    if not signature:
        return False
    expected = compute_signature(secret, message_id, timestamp, body)
    return hmac.compare_digest(expected.encode("utf-8"), signature.strip().encode("utf-8"))


def is_timestamp_fresh(
    timestamp: str, max_age: float | None, now: datetime | None = None
) -> bool:
    """Whether a message timestamp lies within the replay window.

    Args:
        timestamp: RFC3339 timestamp header value.
        max_age: Window in seconds; None accepts any parseable timestamp.
        now: Reference time, defaults to the current UTC time.
    """
    try:
        sent_at = parse_timestamp(timestamp)
    except ValueError:
        return False
    if sent_at is None:
        return False
    if max_age is None:
        return True
    if sent_at.tzinfo is None:
        sent_at = sent_at.replace(tzinfo=UTC)
    reference = now or datetime.now(UTC)
    return abs((reference - sent_at).total_seconds()) <= max_age
